import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from balance_tracker.domain.balance.entity import BalanceSnapshotWithDetails


class NetworkTotal(BaseModel):
    symbol: str
    is_native: bool
    wallet_count: int
    total_balance: str


class WalletBalances(BaseModel):
    label: Optional[str] = None
    balances: Dict[str, str]


class BalanceSummaryResponse(BaseModel):
    total_wallets: int
    total_networks: int
    by_network: Dict[str, NetworkTotal]
    by_wallet: Dict[str, WalletBalances]
    # label -> network -> summed balance
    by_label: Dict[str, Dict[str, str]]
    last_updated: Optional[datetime.datetime] = None


class WalletTimeSeries(BaseModel):
    wallet_address: str
    points: int
    data: List[BalanceSnapshotWithDetails]


class WalletTimeSeriesResponse(BaseModel):
    max_points: int
    series: List[WalletTimeSeries]


class NetworkResponse(BaseModel):
    name: str
    chain_id: int
    symbol: str
    is_native: bool
    token_address: Optional[str] = None


class WalletResponse(BaseModel):
    address: str
    label: Optional[str] = None
    is_active: bool
