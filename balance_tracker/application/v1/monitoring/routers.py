from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Request

from balance_tracker.application.v1.monitoring.handlers import (
    cleanup_handler,
    health_handler,
    start_handler,
    status_handler,
    stop_handler,
    test_network_handler,
    test_networks_handler,
    token_info_handler,
    trigger_handler,
)
from balance_tracker.application.v1.monitoring.schemas import (
    CleanupRequest,
    CleanupResponse,
    MonitoringActionResponse,
    MonitoringHealthResponse,
    MonitoringStatusResponse,
    NetworkTestResponse,
    StartMonitoringRequest,
    TokenInfoResponse,
)

router = APIRouter(prefix="/v1/monitoring", tags=["Monitoring"])


@router.get("/status", response_model=MonitoringStatusResponse)
async def get_status(request: Request):
    return status_handler(request.app.state.balance_monitor)


@router.post("/start", response_model=MonitoringActionResponse)
async def start_monitoring(request: Request, body: Optional[StartMonitoringRequest] = None):
    cron_pattern = (body and body.cron_pattern) or request.app.state.config.monitoring_cron
    return start_handler(request.app.state.balance_monitor, cron_pattern)


@router.post("/stop", response_model=MonitoringActionResponse)
async def stop_monitoring(request: Request):
    return stop_handler(request.app.state.balance_monitor)


@router.post("/trigger", response_model=MonitoringActionResponse)
async def trigger_balance_fetch(request: Request, background_tasks: BackgroundTasks):
    return trigger_handler(request.app.state.balance_monitor, background_tasks)


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_old_data(request: Request, body: Optional[CleanupRequest] = None):
    days_to_keep = request.app.state.config.retention_days
    if body is not None and body.days_to_keep is not None:
        days_to_keep = body.days_to_keep
    return await cleanup_handler(request.app.state.balance_monitor, days_to_keep)


@router.get("/health", response_model=MonitoringHealthResponse)
async def monitoring_health(request: Request):
    return await health_handler(request.app.state.balance_monitor)


@router.get("/networks/test", response_model=Dict[str, bool])
async def test_networks(request: Request):
    return await test_networks_handler(request.app.state.blockchain_repo)


@router.get("/networks/{network}/test", response_model=NetworkTestResponse)
async def test_network(network: str, request: Request):
    return await test_network_handler(request.app.state.blockchain_repo, network)


@router.get("/networks/{network}/token-info", response_model=TokenInfoResponse)
async def get_token_info(network: str, request: Request):
    return await token_info_handler(request.app.state.blockchain_repo, network)
