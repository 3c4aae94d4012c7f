import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field


class MonitoringStatusResponse(BaseModel):
    is_running: bool
    is_monitoring: bool
    schedule: Optional[str] = None
    last_cycle_started_at: Optional[datetime.datetime] = None
    last_cycle_finished_at: Optional[datetime.datetime] = None
    last_cycle_stored: Optional[int] = None
    last_error: Optional[str] = None
    cycles_completed: int = 0
    ticks_skipped: int = 0


class StartMonitoringRequest(BaseModel):
    cron_pattern: Optional[str] = Field(None, description="Crontab pattern, configured schedule when omitted")


class CleanupRequest(BaseModel):
    days_to_keep: Optional[int] = Field(None, description="Retention in days, configured retention when omitted")


class MonitoringActionResponse(BaseModel):
    status: str
    detail: Optional[str] = None


class CleanupResponse(BaseModel):
    deleted: int
    days_to_keep: int


class MonitoringHealthResponse(BaseModel):
    overall_status: str
    service_status: MonitoringStatusResponse
    network_connections: Dict[str, bool]
    latest_balances_count: int


class NetworkTestResponse(BaseModel):
    network: str
    connected: bool


class TokenInfoResponse(BaseModel):
    network: str
    name: str
    symbol: str
    decimals: int
