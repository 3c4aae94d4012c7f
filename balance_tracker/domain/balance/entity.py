import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from balance_tracker.shared.utils.validators import is_valid_balance


class BalanceResult(BaseModel):
    """One balance observation returned by a chain query"""

    address: str
    network_name: str
    balance: str = Field(..., description="Balance in the smallest on-chain unit")
    block_number: Optional[int] = None
    timestamp: datetime.datetime
    is_fallback: bool = False

    @field_validator("balance")
    @classmethod
    def validate_balance(cls, v):
        if not is_valid_balance(v):
            raise ValueError("Balance must be a non-negative integer string")
        return v


class NewBalanceSnapshot(BaseModel):
    wallet_id: int
    network_id: int
    balance: str
    block_number: Optional[int] = None
    timestamp: datetime.datetime

    @field_validator("balance")
    @classmethod
    def validate_balance(cls, v):
        if not is_valid_balance(v):
            raise ValueError("Balance must be a non-negative integer string")
        return v


class BalanceSnapshot(NewBalanceSnapshot):
    id: int
    created_at: datetime.datetime


class BalanceSnapshotWithDetails(BalanceSnapshot):
    wallet_address: str
    wallet_label: Optional[str] = None
    network_name: str
    network_symbol: str
    is_native: bool


class PeriodicBalanceSnapshot(BalanceSnapshotWithDetails):
    period_start: datetime.datetime
    period_end: datetime.datetime
    period_index: int
    total_hours: float
    first_timestamp: datetime.datetime
    last_timestamp: datetime.datetime
    expected_periods: int


class BalanceFilters(BaseModel):
    wallet_addresses: Optional[List[str]] = None
    network_names: Optional[List[str]] = None
    start_date: Optional[datetime.datetime] = None
    end_date: Optional[datetime.datetime] = None


class PeriodicSampleFilters(BaseModel):
    wallet_addresses: Optional[List[str]] = None
    network_names: Optional[List[str]] = None
    since_date: Optional[datetime.datetime] = None


class PaginationParams(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PaginatedSnapshots(BaseModel):
    data: List[BalanceSnapshotWithDetails]
    pagination: PaginationInfo
