import datetime
from collections import defaultdict
from typing import Dict, List, Optional

from balance_tracker.domain.balance.entity import (
    BalanceFilters,
    BalanceSnapshotWithDetails,
    PaginatedSnapshots,
    PaginationParams,
    PeriodicBalanceSnapshot,
    PeriodicSampleFilters,
)
from balance_tracker.domain.balance.repository import BalanceRepository
from balance_tracker.domain.balance.sampling import (
    validate_interval_hours,
    validate_position,
    validate_positive_int,
)
from balance_tracker.domain.network.entity import Network
from balance_tracker.domain.network.repository import NetworkRepository
from balance_tracker.domain.wallet.entity import Wallet
from balance_tracker.domain.wallet.repository import WalletRepository
from balance_tracker.shared.monitoring.logging import LoggerMixin
from balance_tracker.shared.monitoring.metrics import balance_query_duration_seconds, track_time
from balance_tracker.shared.utils.validators import sum_balances

UNLABELED = "unlabeled"


class ListBalanceSnapshots(LoggerMixin):
    def __init__(self, balance_repo: BalanceRepository):
        self.balance_repo = balance_repo

    async def execute(self, filters: BalanceFilters, pagination: PaginationParams) -> PaginatedSnapshots:
        result = await self.balance_repo.get_balance_snapshots(filters, pagination)
        self.logger.info(
            f"Listed balance snapshots - Page: {pagination.page}, "
            f"Returned: {len(result.data)}, Total: {result.pagination.total}"
        )
        return result


class GetLatestBalances(LoggerMixin):
    def __init__(self, balance_repo: BalanceRepository):
        self.balance_repo = balance_repo

    async def execute(self) -> List[BalanceSnapshotWithDetails]:
        return await self.balance_repo.get_latest_balances()


class GetBalanceSummary(LoggerMixin):
    """
    Latest balances grouped by network, by wallet and by wallet label.

    Totals never mix networks: each network holds a different asset, so
    label totals are kept per network as well.
    """

    def __init__(self, balance_repo: BalanceRepository):
        self.balance_repo = balance_repo

    async def execute(self) -> dict:
        latest = await self.balance_repo.get_latest_balances()

        network_rows: Dict[str, List[BalanceSnapshotWithDetails]] = defaultdict(list)
        label_rows: Dict[str, Dict[str, List[str]]] = defaultdict(lambda: defaultdict(list))
        by_wallet: Dict[str, dict] = {}

        for snapshot in latest:
            network_rows[snapshot.network_name].append(snapshot)
            label = snapshot.wallet_label or UNLABELED
            label_rows[label][snapshot.network_name].append(snapshot.balance)

            wallet = by_wallet.setdefault(
                snapshot.wallet_address,
                {"label": snapshot.wallet_label, "balances": {}},
            )
            wallet["balances"][snapshot.network_name] = snapshot.balance

        by_network = {
            name: {
                "symbol": rows[0].network_symbol,
                "is_native": rows[0].is_native,
                "wallet_count": len(rows),
                "total_balance": sum_balances(row.balance for row in rows),
            }
            for name, rows in network_rows.items()
        }
        by_label = {
            label: {network: sum_balances(balances) for network, balances in networks.items()}
            for label, networks in label_rows.items()
        }

        last_updated: Optional[datetime.datetime] = max(
            (snapshot.timestamp for snapshot in latest), default=None
        )
        return {
            "total_wallets": len(by_wallet),
            "total_networks": len(by_network),
            "by_network": by_network,
            "by_wallet": by_wallet,
            "by_label": by_label,
            "last_updated": last_updated,
        }


class GetBalanceHistory(LoggerMixin):
    def __init__(self, balance_repo: BalanceRepository):
        self.balance_repo = balance_repo

    @track_time(balance_query_duration_seconds, {"query": "history"})
    async def execute(
        self,
        wallet_address: str,
        network_name: str,
        start_date: Optional[datetime.datetime] = None,
        end_date: Optional[datetime.datetime] = None,
    ) -> List[BalanceSnapshotWithDetails]:
        return await self.balance_repo.get_balance_history(
            wallet_address, network_name, start_date, end_date
        )


class GetPeriodicSamples(LoggerMixin):
    def __init__(self, balance_repo: BalanceRepository):
        self.balance_repo = balance_repo

    @track_time(balance_query_duration_seconds, {"query": "periodic"})
    async def execute(
        self, interval_hours: int, position: str, filters: PeriodicSampleFilters
    ) -> List[PeriodicBalanceSnapshot]:
        validate_interval_hours(interval_hours)
        validate_position(position)
        samples = await self.balance_repo.get_periodic_samples(interval_hours, position, filters)
        self.logger.info(
            f"Periodic samples - Interval: {interval_hours}h, Position: {position}, Rows: {len(samples)}"
        )
        return samples


class GetTimeSeries(LoggerMixin):
    def __init__(self, balance_repo: BalanceRepository):
        self.balance_repo = balance_repo

    @track_time(balance_query_duration_seconds, {"query": "time_series"})
    async def execute(self, filters: PeriodicSampleFilters, max_points: int) -> List[PeriodicBalanceSnapshot]:
        validate_positive_int(max_points, "max_points")
        return await self.balance_repo.get_time_series(filters, max_points)


class GetWalletTimeSeries(LoggerMixin):
    """One sampled series per wallet; every active wallet when none are requested"""

    def __init__(self, balance_repo: BalanceRepository, wallet_repo: WalletRepository):
        self.balance_repo = balance_repo
        self.wallet_repo = wallet_repo

    @track_time(balance_query_duration_seconds, {"query": "wallet_time_series"})
    async def execute(
        self,
        wallet_addresses: Optional[List[str]],
        max_points: int,
        filters: PeriodicSampleFilters,
    ) -> Dict[str, List[BalanceSnapshotWithDetails]]:
        validate_positive_int(max_points, "max_points")

        if not wallet_addresses:
            wallets = await self.wallet_repo.list_wallets()
            wallet_addresses = [wallet.address for wallet in wallets]

        series = {}
        for address in wallet_addresses:
            series[address] = await self.balance_repo.get_wallet_time_series(
                address, max_points, filters
            )
        self.logger.info(
            f"Wallet time series built for {len(series)} wallets with max {max_points} points"
        )
        return series


class ListNetworks:
    def __init__(self, network_repo: NetworkRepository):
        self.network_repo = network_repo

    async def execute(self) -> List[Network]:
        return await self.network_repo.list_networks()


class ListWallets:
    def __init__(self, wallet_repo: WalletRepository):
        self.wallet_repo = wallet_repo

    async def execute(self) -> List[Wallet]:
        return await self.wallet_repo.list_wallets()
