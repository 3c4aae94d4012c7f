import datetime
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from balance_tracker.domain.balance.entity import (
    BalanceFilters,
    BalanceResult,
    BalanceSnapshot,
    BalanceSnapshotWithDetails,
    NewBalanceSnapshot,
    PaginatedSnapshots,
    PaginationParams,
    PeriodicBalanceSnapshot,
    PeriodicSampleFilters,
)


class BalanceRepository(ABC):
    @abstractmethod
    async def create_snapshot(self, snapshot: NewBalanceSnapshot) -> BalanceSnapshot:
        pass

    @abstractmethod
    async def bulk_create_snapshots(self, snapshots: List[NewBalanceSnapshot]) -> int:
        pass

    @abstractmethod
    async def get_latest_balances(self) -> List[BalanceSnapshotWithDetails]:
        pass

    @abstractmethod
    async def get_latest_balance(
        self, wallet_address: str, network_name: str
    ) -> Optional[BalanceSnapshotWithDetails]:
        pass

    @abstractmethod
    async def get_balance_history(
        self,
        wallet_address: str,
        network_name: str,
        start_date: Optional[datetime.datetime] = None,
        end_date: Optional[datetime.datetime] = None,
    ) -> List[BalanceSnapshotWithDetails]:
        pass

    @abstractmethod
    async def get_balance_snapshots(
        self, filters: BalanceFilters, pagination: PaginationParams
    ) -> PaginatedSnapshots:
        pass

    @abstractmethod
    async def get_periodic_samples(
        self, interval_hours: int, position: str, filters: PeriodicSampleFilters
    ) -> List[PeriodicBalanceSnapshot]:
        pass

    @abstractmethod
    async def get_time_series(
        self, filters: PeriodicSampleFilters, max_points: int
    ) -> List[PeriodicBalanceSnapshot]:
        pass

    @abstractmethod
    async def get_wallet_time_series(
        self, wallet_address: str, max_points: int, filters: PeriodicSampleFilters
    ) -> List[BalanceSnapshotWithDetails]:
        pass

    @abstractmethod
    async def cleanup_old_snapshots(self, retention_days: int) -> int:
        pass


class BlockchainBalanceRepository(ABC):
    @abstractmethod
    async def get_balance(self, network_key: str, address: str) -> BalanceResult:
        pass

    @abstractmethod
    async def test_connection(self, network_key: str) -> bool:
        pass

    @abstractmethod
    async def test_all_connections(self) -> Dict[str, bool]:
        pass
