import datetime
from unittest.mock import AsyncMock, Mock

import pytest

from balance_tracker.domain.balance.entity import BalanceResult, BalanceSnapshotWithDetails
from balance_tracker.domain.balance.exceptions import ConnectivityError, ContractCallError
from balance_tracker.infrastructure.blockchain.balance.resilient_fetcher import (
    DEFAULT_BALANCE,
    ResilientBalanceFetcher,
)

NOW = datetime.datetime(2024, 3, 1, 12, tzinfo=datetime.timezone.utc)
EARLIER = NOW - datetime.timedelta(hours=3)


def live_result(network_key: str, address: str) -> BalanceResult:
    return BalanceResult(
        address=address,
        network_name=network_key,
        balance="1000",
        block_number=500,
        timestamp=NOW,
    )


def stored_snapshot(balance: str) -> BalanceSnapshotWithDetails:
    return BalanceSnapshotWithDetails(
        id=99,
        wallet_id=1,
        network_id=2,
        balance=balance,
        block_number=400,
        timestamp=EARLIER,
        created_at=EARLIER,
        wallet_address="0xa",
        wallet_label=None,
        network_name="BSC",
        network_symbol="ERC20",
        is_native=False,
    )


class TestResilientBalanceFetcher:
    """Test per-pair fault isolation and last-known-value fallback"""

    @pytest.fixture
    def blockchain_repo(self):
        repo = Mock()

        async def get_balance(network_key, address):
            if network_key == "BSC":
                raise ConnectivityError(network_key, address, "RPC call timed out")
            return live_result(network_key, address)

        repo.get_balance = AsyncMock(side_effect=get_balance)
        return repo

    @pytest.fixture
    def balance_repo(self):
        repo = Mock()
        repo.get_latest_balance = AsyncMock(return_value=None)
        return repo

    @pytest.fixture
    def fetcher(self, blockchain_repo, balance_repo):
        return ResilientBalanceFetcher(blockchain_repo, balance_repo)

    @pytest.mark.asyncio
    async def test_full_matrix_one_result_per_pair(self, fetcher, blockchain_repo):
        results = await fetcher.get_multiple_balances(["ETH", "BSC", "EDGEN"], ["0xa", "0xb"])

        assert len(results) == 6
        assert {(r.network_name, r.address) for r in results} == {
            (network, address) for network in ("ETH", "BSC", "EDGEN") for address in ("0xa", "0xb")
        }
        assert blockchain_repo.get_balance.await_count == 6

    @pytest.mark.asyncio
    async def test_failure_uses_last_known_balance(self, fetcher, balance_repo):
        balance_repo.get_latest_balance.return_value = stored_snapshot("777777777777777777777777")

        results = await fetcher.get_multiple_balances(["BSC"], ["0xa"])

        assert len(results) == 1
        assert results[0].balance == "777777777777777777777777"
        assert results[0].block_number == 400
        assert results[0].is_fallback is True
        balance_repo.get_latest_balance.assert_awaited_once_with("0xa", "BSC")

    @pytest.mark.asyncio
    async def test_failure_without_history_defaults_to_zero(self, fetcher):
        results = await fetcher.get_multiple_balances(["BSC"], ["0xa"])

        assert results[0].balance == DEFAULT_BALANCE == "0"
        assert results[0].block_number is None
        assert results[0].is_fallback is True

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_siblings(self, fetcher):
        results = await fetcher.get_multiple_balances(["ETH", "BSC"], ["0xa"])
        by_network = {r.network_name: r for r in results}

        assert by_network["ETH"].balance == "1000"
        assert by_network["ETH"].is_fallback is False
        assert by_network["BSC"].is_fallback is True

    @pytest.mark.asyncio
    async def test_fallback_lookup_failure_defaults_to_zero(self, fetcher, balance_repo):
        balance_repo.get_latest_balance.side_effect = Exception("database down")

        results = await fetcher.get_multiple_balances(["BSC"], ["0xa"])

        assert results[0].balance == "0"

    @pytest.mark.asyncio
    async def test_contract_errors_also_fall_back(self, blockchain_repo, balance_repo):
        blockchain_repo.get_balance = AsyncMock(
            side_effect=ContractCallError("ETH", "0xa", "Malformed contract response")
        )
        fetcher = ResilientBalanceFetcher(blockchain_repo, balance_repo)

        results = await fetcher.get_multiple_balances(["ETH"], ["0xa"])

        assert results[0].balance == "0"
        assert results[0].is_fallback is True

    @pytest.mark.asyncio
    async def test_empty_matrix(self, fetcher, blockchain_repo):
        assert await fetcher.get_multiple_balances([], ["0xa"]) == []
        blockchain_repo.get_balance.assert_not_called()

    @pytest.mark.asyncio
    async def test_all_balances_covers_configured_networks(self, fetcher, blockchain_repo):
        blockchain_repo.networks = {"ETH": Mock(), "EDGEN": Mock()}

        results = await fetcher.get_all_balances(["0xa"])

        assert sorted(r.network_name for r in results) == ["EDGEN", "ETH"]
