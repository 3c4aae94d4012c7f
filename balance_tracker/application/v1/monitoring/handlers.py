from http import HTTPStatus
from typing import Dict, Optional

from fastapi import BackgroundTasks, HTTPException

from balance_tracker.application.v1.monitoring.schemas import (
    CleanupResponse,
    MonitoringActionResponse,
    MonitoringHealthResponse,
    MonitoringStatusResponse,
    NetworkTestResponse,
    TokenInfoResponse,
)
from balance_tracker.domain.balance.exceptions import QueryValidationError
from balance_tracker.infrastructure.blockchain.balance.node_repository import (
    Web3BalanceRepository,
)
from balance_tracker.shared.monitoring.balance_scheduler import BalanceMonitoringService
from balance_tracker.shared.monitoring.logging import get_logger

logger = get_logger(__name__)


def status_handler(service: BalanceMonitoringService) -> MonitoringStatusResponse:
    return MonitoringStatusResponse(**service.get_status())


def start_handler(service: BalanceMonitoringService, cron_pattern: str) -> MonitoringActionResponse:
    try:
        started = service.start_monitoring(cron_pattern)
    except QueryValidationError as e:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(e)) from e

    if not started:
        return MonitoringActionResponse(
            status="already_running", detail=f"Monitoring active with schedule {service.schedule}"
        )
    return MonitoringActionResponse(status="started", detail=f"Schedule: {cron_pattern}")


def stop_handler(service: BalanceMonitoringService) -> MonitoringActionResponse:
    if not service.stop_monitoring():
        return MonitoringActionResponse(status="not_running")
    return MonitoringActionResponse(status="stopped")


def trigger_handler(
    service: BalanceMonitoringService, background_tasks: BackgroundTasks
) -> MonitoringActionResponse:
    # The cycle reports its outcome through status and logs, not through this response
    background_tasks.add_task(service.trigger_balance_fetch)
    logger.info("Balance fetch scheduled in background")
    return MonitoringActionResponse(status="triggered", detail="Balance fetch runs in background")


async def cleanup_handler(service: BalanceMonitoringService, days_to_keep: int) -> CleanupResponse:
    try:
        deleted = await service.cleanup_old_data(days_to_keep)
    except QueryValidationError as e:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(e)) from e
    return CleanupResponse(deleted=deleted, days_to_keep=days_to_keep)


async def health_handler(service: BalanceMonitoringService) -> MonitoringHealthResponse:
    health = await service.health_check()
    return MonitoringHealthResponse(
        overall_status=health["overall_status"],
        service_status=MonitoringStatusResponse(**health["service_status"]),
        network_connections=health["network_connections"],
        latest_balances_count=health["latest_balances_count"],
    )


async def test_networks_handler(blockchain_repo: Web3BalanceRepository) -> Dict[str, bool]:
    return await blockchain_repo.test_all_connections()


def _require_network(blockchain_repo: Web3BalanceRepository, network: str) -> None:
    if network not in blockchain_repo.networks:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=f"Unknown network: {network}")


async def test_network_handler(blockchain_repo: Web3BalanceRepository, network: str) -> NetworkTestResponse:
    _require_network(blockchain_repo, network)
    connected = await blockchain_repo.test_connection(network)
    return NetworkTestResponse(network=network, connected=connected)


async def token_info_handler(blockchain_repo: Web3BalanceRepository, network: str) -> TokenInfoResponse:
    _require_network(blockchain_repo, network)
    info: Optional[dict] = await blockchain_repo.get_token_info(network)
    if info is None:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND,
            detail=f"No token information available for network {network}",
        )
    return TokenInfoResponse(network=network, **info)
