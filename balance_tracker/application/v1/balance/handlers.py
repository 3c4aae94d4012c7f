import datetime
from http import HTTPStatus
from typing import List, Optional

from fastapi import HTTPException

from balance_tracker.application.v1.balance.schemas import (
    BalanceSummaryResponse,
    NetworkResponse,
    WalletResponse,
    WalletTimeSeries,
    WalletTimeSeriesResponse,
)
from balance_tracker.application.v1.balance.usecase import (
    GetBalanceHistory,
    GetBalanceSummary,
    GetLatestBalances,
    GetPeriodicSamples,
    GetTimeSeries,
    GetWalletTimeSeries,
    ListBalanceSnapshots,
    ListNetworks,
    ListWallets,
)
from balance_tracker.domain.balance.entity import (
    BalanceFilters,
    BalanceSnapshotWithDetails,
    PaginatedSnapshots,
    PaginationParams,
    PeriodicBalanceSnapshot,
    PeriodicSampleFilters,
)
from balance_tracker.domain.balance.exceptions import QueryValidationError
from balance_tracker.shared.monitoring.logging import get_logger

logger = get_logger(__name__)


def bad_request(error: QueryValidationError) -> HTTPException:
    logger.warning(f"Rejected balance query: {str(error)}")
    return HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(error))


async def list_balances_handler(
    usecase: ListBalanceSnapshots, filters: BalanceFilters, pagination: PaginationParams
) -> PaginatedSnapshots:
    try:
        return await usecase.execute(filters, pagination)
    except QueryValidationError as e:
        raise bad_request(e) from e


async def latest_balances_handler(usecase: GetLatestBalances) -> List[BalanceSnapshotWithDetails]:
    return await usecase.execute()


async def balance_summary_handler(usecase: GetBalanceSummary) -> BalanceSummaryResponse:
    summary = await usecase.execute()
    return BalanceSummaryResponse(**summary)


async def balance_history_handler(
    usecase: GetBalanceHistory,
    wallet_address: str,
    network_name: str,
    start_date: Optional[datetime.datetime],
    end_date: Optional[datetime.datetime],
) -> List[BalanceSnapshotWithDetails]:
    try:
        return await usecase.execute(wallet_address, network_name, start_date, end_date)
    except QueryValidationError as e:
        raise bad_request(e) from e


async def periodic_samples_handler(
    usecase: GetPeriodicSamples,
    interval_hours: int,
    position: str,
    filters: PeriodicSampleFilters,
) -> List[PeriodicBalanceSnapshot]:
    try:
        return await usecase.execute(interval_hours, position, filters)
    except QueryValidationError as e:
        raise bad_request(e) from e


async def time_series_handler(
    usecase: GetTimeSeries, filters: PeriodicSampleFilters, max_points: int
) -> List[PeriodicBalanceSnapshot]:
    try:
        return await usecase.execute(filters, max_points)
    except QueryValidationError as e:
        raise bad_request(e) from e


async def wallet_time_series_handler(
    usecase: GetWalletTimeSeries,
    wallet_addresses: Optional[List[str]],
    max_points: int,
    filters: PeriodicSampleFilters,
) -> WalletTimeSeriesResponse:
    try:
        series = await usecase.execute(wallet_addresses, max_points, filters)
    except QueryValidationError as e:
        raise bad_request(e) from e

    return WalletTimeSeriesResponse(
        max_points=max_points,
        series=[
            WalletTimeSeries(wallet_address=address, points=len(rows), data=rows)
            for address, rows in series.items()
        ],
    )


async def list_networks_handler(usecase: ListNetworks) -> List[NetworkResponse]:
    networks = await usecase.execute()
    return [
        NetworkResponse(
            name=network.name,
            chain_id=network.chain_id,
            symbol=network.symbol,
            is_native=network.is_native,
            token_address=network.token_address,
        )
        for network in networks
    ]


async def list_wallets_handler(usecase: ListWallets) -> List[WalletResponse]:
    wallets = await usecase.execute()
    return [
        WalletResponse(address=wallet.address, label=wallet.label, is_active=wallet.is_active)
        for wallet in wallets
    ]
