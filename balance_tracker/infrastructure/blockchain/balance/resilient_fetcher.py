import asyncio
import datetime
import time
from typing import List, Sequence

from balance_tracker.domain.balance.entity import BalanceResult
from balance_tracker.domain.balance.repository import (
    BalanceRepository,
    BlockchainBalanceRepository,
)
from balance_tracker.shared.monitoring.logging import LoggerMixin, log_blockchain_operation
from balance_tracker.shared.monitoring.metrics import record_balance_fetch, record_error

DEFAULT_BALANCE = "0"


class ResilientBalanceFetcher(LoggerMixin):
    """
    Fans balance lookups out over every (network, wallet) pair at once.

    A failing pair never cancels its siblings: it is replaced by the last
    persisted balance for that exact pair, or by ``"0"`` when there is none.
    The result always has one entry per requested pair.
    """

    def __init__(
        self,
        blockchain_repo: BlockchainBalanceRepository,
        balance_repo: BalanceRepository,
    ):
        self.blockchain_repo = blockchain_repo
        self.balance_repo = balance_repo

    async def get_multiple_balances(
        self, network_keys: Sequence[str], addresses: Sequence[str]
    ) -> List[BalanceResult]:
        pairs = [(network_key, address) for network_key in network_keys for address in addresses]
        self.logger.info(
            f"Fetching balances for {len(addresses)} wallets across {len(network_keys)} networks"
        )
        results = await asyncio.gather(
            *(self._fetch_pair(network_key, address) for network_key, address in pairs)
        )
        return list(results)

    async def get_all_balances(self, addresses: Sequence[str]) -> List[BalanceResult]:
        """Every configured network for the given wallets"""
        return await self.get_multiple_balances(list(self.blockchain_repo.networks), addresses)

    async def _fetch_pair(self, network_key: str, address: str) -> BalanceResult:
        start_time = time.time()
        try:
            result = await self.blockchain_repo.get_balance(network_key, address)
        except Exception as e:
            duration = time.time() - start_time
            self.logger.error(
                f"Failed to get balance for {address} on {network_key}: {str(e)}",
                extra=log_blockchain_operation("get_balance", network=network_key, address=address),
            )
            record_error(type(e).__name__, "blockchain")
            return await self._fallback(network_key, address, duration)

        record_balance_fetch(network_key, "success", time.time() - start_time)
        return result

    async def _fallback(self, network_key: str, address: str, duration: float) -> BalanceResult:
        now = datetime.datetime.now(datetime.timezone.utc)
        try:
            last = await self.balance_repo.get_latest_balance(address, network_key)
        except Exception as e:
            self.logger.error(
                f"Last-known balance lookup failed for {address} on {network_key}: {str(e)}"
            )
            last = None

        if last is not None:
            self.logger.warning(
                f"Using last known balance for {address} on {network_key}: "
                f"{last.balance} (observed {last.timestamp.isoformat()})"
            )
            record_balance_fetch(network_key, "fallback", duration)
            return BalanceResult(
                address=address,
                network_name=network_key,
                balance=last.balance,
                block_number=last.block_number,
                timestamp=now,
                is_fallback=True,
            )

        self.logger.warning(
            f"No previous balance for {address} on {network_key}, defaulting to {DEFAULT_BALANCE}"
        )
        record_balance_fetch(network_key, "default", duration)
        return BalanceResult(
            address=address,
            network_name=network_key,
            balance=DEFAULT_BALANCE,
            block_number=None,
            timestamp=now,
            is_fallback=True,
        )
