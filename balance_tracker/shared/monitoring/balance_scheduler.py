import asyncio
import datetime
import time
from typing import Dict, List, Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from balance_tracker.domain.balance.entity import BalanceResult, NewBalanceSnapshot
from balance_tracker.domain.balance.exceptions import (
    QueryValidationError,
    UnresolvedReferenceError,
)
from balance_tracker.domain.balance.repository import (
    BalanceRepository,
    BlockchainBalanceRepository,
)
from balance_tracker.domain.network.repository import NetworkRepository
from balance_tracker.domain.wallet.repository import WalletRepository
from balance_tracker.infrastructure.blockchain.balance.resilient_fetcher import (
    ResilientBalanceFetcher,
)
from balance_tracker.infrastructure.config import NetworkConfig
from balance_tracker.shared.monitoring.logging import LoggerMixin, log_collection_cycle
from balance_tracker.shared.monitoring.metrics import (
    record_collection_cycle,
    record_error,
    record_unresolved_pair,
)
from balance_tracker.shared.utils.lookup_cache import LookupCache

DEFAULT_CRON_PATTERN = "* * * * *"
JOB_ID = "balance_collection"


class BalanceMonitoringService(LoggerMixin):
    """
    Periodic balance collection: fetch every (network, wallet) pair, then
    persist the whole cycle with one bulk insert.

    At most one cycle runs at a time. A tick arriving while a cycle is in
    progress is dropped, never queued.
    """

    def __init__(
        self,
        fetcher: ResilientBalanceFetcher,
        blockchain_repo: BlockchainBalanceRepository,
        balance_repo: BalanceRepository,
        wallet_repo: WalletRepository,
        network_repo: NetworkRepository,
        networks: Dict[str, NetworkConfig],
        monitored_wallets: List[Tuple[str, Optional[str]]],
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.fetcher = fetcher
        self.blockchain_repo = blockchain_repo
        self.balance_repo = balance_repo
        self.wallet_repo = wallet_repo
        self.network_repo = network_repo
        self.networks = networks
        self.monitored_wallets = monitored_wallets
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

        self.wallet_ids: LookupCache[str, int] = LookupCache("wallets", wallet_repo.get_address_map)
        self.network_ids: LookupCache[str, int] = LookupCache("networks", network_repo.get_name_map)

        self.initialized = False
        self.is_running = False
        self.schedule: Optional[str] = None
        self._job = None

        self.cycles_completed = 0
        self.ticks_skipped = 0
        self.last_cycle_started_at: Optional[datetime.datetime] = None
        self.last_cycle_finished_at: Optional[datetime.datetime] = None
        self.last_cycle_stored: Optional[int] = None
        self.last_error: Optional[str] = None

    async def initialize(self) -> None:
        """Register configured networks and wallets, then load the identifier caches"""
        for network in self.networks.values():
            try:
                await self.network_repo.upsert_network(network)
            except Exception as e:
                self.logger.error(f"Failed to register network {network.key}: {str(e)}")

        for address, label in self.monitored_wallets:
            try:
                await self.wallet_repo.upsert_wallet(address, label)
            except Exception as e:
                self.logger.error(f"Failed to initialize wallet {address}: {str(e)}")
        self.logger.info(f"Initialized {len(self.monitored_wallets)} wallets")

        await self.refresh_lookup_maps()

        connections = await self.blockchain_repo.test_all_connections()
        for network_key, is_connected in connections.items():
            if is_connected:
                self.logger.info(f"Network {network_key} connection successful")
            else:
                self.logger.warning(f"Network {network_key} connection failed")

        self.initialized = True
        self.logger.info("Balance monitoring service initialized successfully")

    async def refresh_lookup_maps(self) -> None:
        """Reload address and network identifiers; call after adding wallets or networks elsewhere"""
        await asyncio.gather(self.wallet_ids.refresh(), self.network_ids.refresh())

    def _resolve(self, results: List[BalanceResult]) -> List[NewBalanceSnapshot]:
        snapshots = []
        for result in results:
            wallet_id = self.wallet_ids.get(result.address)
            network_id = self.network_ids.get(result.network_name)
            if wallet_id is None or network_id is None:
                error = UnresolvedReferenceError(
                    result.address,
                    result.network_name,
                    "wallet" if wallet_id is None else "network",
                )
                self.logger.warning(f"Skipping balance: {error}")
                record_unresolved_pair()
                continue

            snapshots.append(
                NewBalanceSnapshot(
                    wallet_id=wallet_id,
                    network_id=network_id,
                    balance=result.balance,
                    block_number=result.block_number,
                    timestamp=result.timestamp,
                )
            )
        return snapshots

    async def fetch_and_store_balances(self) -> Optional[int]:
        """
        Run one collection cycle.

        Returns the number of stored snapshots, or None when the tick was
        dropped or the cycle failed. Failures are reported through logs and
        ``get_status()``, never raised to the caller.
        """
        # No await between the check and the set: the flag flip is atomic on the event loop
        if self.is_running:
            self.ticks_skipped += 1
            self.logger.warning("Balance fetch already in progress, skipping...")
            record_collection_cycle("skipped")
            return None

        self.is_running = True
        start_time = time.time()
        self.last_cycle_started_at = datetime.datetime.now(datetime.timezone.utc)

        try:
            self.logger.info("Starting balance fetch cycle...")
            addresses = [address for address, _ in self.monitored_wallets]
            results = await self.fetcher.get_multiple_balances(list(self.networks), addresses)
            self.logger.info(f"Fetched {len(results)} balance records")

            snapshots = self._resolve(results)
            stored = await self.balance_repo.bulk_create_snapshots(snapshots)

            duration = time.time() - start_time
            self.cycles_completed += 1
            self.last_cycle_stored = stored
            self.last_error = None
            self.logger.info(
                f"Balance fetch cycle completed in {duration:.3f}s - Stored: {stored}, "
                f"Skipped: {len(results) - len(snapshots)}",
                extra=log_collection_cycle("success", stored=stored, duration=duration),
            )
            record_collection_cycle("success", duration, stored)
            return stored

        except Exception as e:
            duration = time.time() - start_time
            self.last_error = f"{type(e).__name__}: {str(e)}"
            self.logger.error(
                f"Error during balance fetch cycle after {duration:.3f}s: {str(e)}",
                extra=log_collection_cycle("error", duration=duration),
            )
            record_collection_cycle("error", duration)
            record_error(type(e).__name__, "scheduler")
            return None

        finally:
            self.is_running = False
            self.last_cycle_finished_at = datetime.datetime.now(datetime.timezone.utc)

    def start_monitoring(self, cron_pattern: str = DEFAULT_CRON_PATTERN) -> bool:
        """
        Run ``fetch_and_store_balances`` on a crontab schedule.

        Returns False when monitoring is already started.
        """
        if self._job is not None:
            self.logger.warning("Monitoring already started")
            return False
        if not self.initialized:
            raise RuntimeError("initialize() must complete before monitoring starts")

        try:
            trigger = CronTrigger.from_crontab(cron_pattern, timezone="UTC")
        except ValueError as e:
            raise QueryValidationError(f"Invalid cron pattern '{cron_pattern}': {e}") from e

        if not self.scheduler.running:
            self.scheduler.start()

        self.logger.info(f"Starting balance monitoring with pattern: {cron_pattern}")
        self._job = self.scheduler.add_job(
            self.fetch_and_store_balances,
            trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.schedule = cron_pattern
        self.logger.info("Balance monitoring started")
        return True

    def stop_monitoring(self) -> bool:
        if self._job is None:
            return False
        self._job.remove()
        self._job = None
        self.schedule = None
        self.logger.info("Balance monitoring stopped")
        return True

    def shutdown(self) -> None:
        self.stop_monitoring()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def get_status(self) -> dict:
        return {
            "is_running": self.is_running,
            "is_monitoring": self._job is not None,
            "schedule": self.schedule,
            "last_cycle_started_at": self.last_cycle_started_at,
            "last_cycle_finished_at": self.last_cycle_finished_at,
            "last_cycle_stored": self.last_cycle_stored,
            "last_error": self.last_error,
            "cycles_completed": self.cycles_completed,
            "ticks_skipped": self.ticks_skipped,
        }

    async def trigger_balance_fetch(self) -> Optional[int]:
        self.logger.info("Manual balance fetch triggered")
        return await self.fetch_and_store_balances()

    async def cleanup_old_data(self, days_to_keep: int = 30) -> int:
        self.logger.info(f"Cleaning up balance snapshots older than {days_to_keep} days")
        return await self.balance_repo.cleanup_old_snapshots(days_to_keep)

    async def health_check(self) -> dict:
        connections = await self.blockchain_repo.test_all_connections()
        latest = await self.balance_repo.get_latest_balances()
        return {
            "overall_status": "healthy" if all(connections.values()) else "degraded",
            "service_status": self.get_status(),
            "network_connections": connections,
            "latest_balances_count": len(latest),
        }
