import datetime
from unittest.mock import AsyncMock, Mock

import pytest

from balance_tracker.infrastructure.db.wallet.postgresql_repository import (
    PostgreSQLWalletRepository,
)

NOW = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)


def wallet_row(wallet_id: int, address: str, label=None, is_active=True) -> dict:
    return {
        "id": wallet_id,
        "address": address,
        "label": label,
        "is_active": is_active,
        "created_at": NOW,
        "updated_at": NOW,
    }


class TestPostgreSQLWalletRepository:
    """Test PostgreSQL Wallet Repository"""

    @pytest.fixture
    def mock_pool(self):
        """Create mock connection pool"""
        pool = Mock()
        conn = AsyncMock()

        # Mock the async context manager
        async_context = AsyncMock()
        async_context.__aenter__ = AsyncMock(return_value=conn)
        async_context.__aexit__ = AsyncMock(return_value=None)
        pool.acquire.return_value = async_context

        return pool, conn

    @pytest.fixture
    def repository(self, mock_pool):
        """Create repository instance with mock pool"""
        pool, conn = mock_pool
        return PostgreSQLWalletRepository(pool), conn

    @pytest.mark.asyncio
    async def test_upsert_wallet(self, repository):
        """Test upserting wallet keeps the address as given"""
        repo, conn = repository
        address = "0xA62162A652dE844510a694AE1F666930B3224CCA"
        conn.fetchrow.return_value = wallet_row(1, address, "binance")

        wallet = await repo.upsert_wallet(address, "binance")

        assert wallet.id == 1
        assert wallet.label == "binance"
        query, *params = conn.fetchrow.call_args[0]
        assert "ON CONFLICT (address) DO UPDATE" in query
        assert "COALESCE(EXCLUDED.label, wallets.label)" in query
        assert params == [address, "binance"]

    @pytest.mark.asyncio
    async def test_upsert_wallet_error(self, repository):
        """Test upsert propagates database errors"""
        repo, conn = repository
        conn.fetchrow.side_effect = Exception("Database error")

        with pytest.raises(Exception, match="Database error"):
            await repo.upsert_wallet("0xabc")

    @pytest.mark.asyncio
    async def test_list_wallets_active_only(self, repository):
        repo, conn = repository
        conn.fetch.return_value = [wallet_row(1, "0xa"), wallet_row(2, "0xb", "okx")]

        wallets = await repo.list_wallets()

        assert [w.address for w in wallets] == ["0xa", "0xb"]
        assert "is_active = true" in conn.fetch.call_args[0][0]

    @pytest.mark.asyncio
    async def test_list_wallets_error(self, repository):
        repo, conn = repository
        conn.fetch.side_effect = Exception("Connection lost")

        with pytest.raises(Exception, match="Connection lost"):
            await repo.list_wallets()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, expected", [("UPDATE 1", True), ("UPDATE 0", False)])
    async def test_deactivate_wallet(self, repository, status, expected):
        repo, conn = repository
        conn.execute.return_value = status

        assert await repo.deactivate_wallet("0xabc") is expected
        assert "is_active = false" in conn.execute.call_args[0][0]

    @pytest.mark.asyncio
    async def test_get_address_map(self, repository):
        repo, conn = repository
        conn.fetch.return_value = [{"id": 1, "address": "0xA"}, {"id": 2, "address": "0xB"}]

        assert await repo.get_address_map() == {"0xA": 1, "0xB": 2}
