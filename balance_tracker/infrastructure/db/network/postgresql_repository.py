from typing import Dict, List

from balance_tracker.domain.network.entity import Network
from balance_tracker.domain.network.repository import NetworkRepository
from balance_tracker.infrastructure.config import NetworkConfig
from balance_tracker.shared.monitoring.logging import LoggerMixin
from balance_tracker.shared.monitoring.metrics import MetricsContext

NETWORK_COLUMNS = "id, name, chain_id, token_address, is_native, symbol, created_at, updated_at"


class PostgreSQLNetworkRepository(NetworkRepository, LoggerMixin):
    def __init__(self, pool):
        self._pool = pool

    async def upsert_network(self, network: NetworkConfig) -> Network:
        with MetricsContext("upsert_network", "database", "networks"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    "INSERT INTO networks (name, chain_id, token_address, is_native, symbol) "
                    "VALUES ($1, $2, $3, $4, $5) "
                    "ON CONFLICT (name) DO UPDATE SET "
                    "chain_id = EXCLUDED.chain_id, token_address = EXCLUDED.token_address, "
                    "is_native = EXCLUDED.is_native, symbol = EXCLUDED.symbol, "
                    "updated_at = CURRENT_TIMESTAMP "
                    f"RETURNING {NETWORK_COLUMNS}",
                    network.key,
                    network.chain_id,
                    network.token_address,
                    network.is_native,
                    network.symbol,
                )
        self.logger.debug(f"Network upserted - Name: {network.key}, Id: {row['id']}")
        return Network(**dict(row))

    async def list_networks(self) -> List[Network]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(f"SELECT {NETWORK_COLUMNS} FROM networks ORDER BY name")
        return [Network(**dict(row)) for row in rows]

    async def get_name_map(self) -> Dict[str, int]:
        with MetricsContext("get_name_map", "database", "networks"):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch("SELECT id, name FROM networks")
        return {row["name"]: row["id"] for row in rows}
