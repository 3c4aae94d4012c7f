import time
from typing import Dict, List, Optional

from balance_tracker.domain.wallet.entity import Wallet
from balance_tracker.domain.wallet.repository import WalletRepository

# Monitoring imports
from balance_tracker.shared.monitoring.logging import LoggerMixin
from balance_tracker.shared.monitoring.metrics import (
    MetricsContext,
    record_database_operation,
)

WALLET_COLUMNS = "id, address, label, is_active, created_at, updated_at"


class PostgreSQLWalletRepository(WalletRepository, LoggerMixin):
    def __init__(self, pool):
        self._pool = pool

    async def upsert_wallet(self, address: str, label: Optional[str] = None) -> Wallet:
        """Insert the wallet or reactivate it; an existing label is kept when none is given."""
        start_time = time.time()

        try:
            with MetricsContext("upsert_wallet", "database", "wallets"):
                async with self._pool.acquire() as conn:
                    row = await conn.fetchrow(
                        "INSERT INTO wallets (address, label) VALUES ($1, $2) "
                        "ON CONFLICT (address) DO UPDATE SET "
                        "label = COALESCE(EXCLUDED.label, wallets.label), "
                        "is_active = true, updated_at = CURRENT_TIMESTAMP "
                        f"RETURNING {WALLET_COLUMNS}",
                        address,
                        label,
                    )

            duration = time.time() - start_time
            self.logger.debug(
                f"Wallet upserted - Address: {address}, Id: {row['id']}, Duration: {duration:.3f}s"
            )
            return Wallet(**dict(row))

        except Exception as e:
            self.logger.error(f"Failed to upsert wallet - Address: {address}, Error: {str(e)}")
            raise

    async def list_wallets(self) -> List[Wallet]:
        """Active wallets only, ordered by address"""
        start_time = time.time()

        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    f"SELECT {WALLET_COLUMNS} FROM wallets WHERE is_active = true ORDER BY address"
                )
            wallets = [Wallet(**dict(row)) for row in rows]

            duration = time.time() - start_time
            self.logger.info(
                f"Wallets listed successfully - Count: {len(wallets)}, Duration: {duration:.3f}s"
            )
            record_database_operation("list_wallets", "wallets", "success", duration)
            return wallets

        except Exception as e:
            duration = time.time() - start_time
            self.logger.error(
                f"Failed to list wallets - Error: {str(e)}, Duration: {duration:.3f}s"
            )
            record_database_operation("list_wallets", "wallets", "error", duration)
            raise

    async def deactivate_wallet(self, address: str) -> bool:
        """Soft-delete: the wallet row and its snapshots stay in place"""
        async with self._pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE wallets SET is_active = false, updated_at = CURRENT_TIMESTAMP "
                "WHERE address = $1",
                address,
            )
        # result looks like "UPDATE 1" when a row was affected
        updated = result.split()[-1] != "0"
        self.logger.info(f"Wallet deactivation - Address: {address}, Updated: {updated}")
        return updated

    async def get_address_map(self) -> Dict[str, int]:
        """``{address: id}`` for every known wallet, active or not"""
        with MetricsContext("get_address_map", "database", "wallets"):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch("SELECT id, address FROM wallets")
        return {row["address"]: row["id"] for row in rows}
