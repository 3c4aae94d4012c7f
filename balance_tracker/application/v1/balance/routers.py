import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from balance_tracker.application.v1.balance.handlers import (
    balance_history_handler,
    balance_summary_handler,
    latest_balances_handler,
    list_balances_handler,
    list_networks_handler,
    list_wallets_handler,
    periodic_samples_handler,
    time_series_handler,
    wallet_time_series_handler,
)
from balance_tracker.application.v1.balance.schemas import (
    BalanceSummaryResponse,
    NetworkResponse,
    WalletResponse,
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
from balance_tracker.domain.balance.sampling import POSITION_LAST

router = APIRouter(prefix="/v1/balances", tags=["Balance"])


def sample_filters(
    wallet_addresses: Optional[List[str]] = Query(None, description="Restrict to these wallets"),
    network_names: Optional[List[str]] = Query(None, description="Restrict to these networks"),
    since_date: Optional[datetime.datetime] = Query(None, description="Ignore snapshots before this instant"),
) -> PeriodicSampleFilters:
    return PeriodicSampleFilters(
        wallet_addresses=wallet_addresses,
        network_names=network_names,
        since_date=since_date,
    )


@router.get("", response_model=PaginatedSnapshots)
async def list_balances(
    request: Request,
    wallet_addresses: Optional[List[str]] = Query(None),
    network_names: Optional[List[str]] = Query(None),
    start_date: Optional[datetime.datetime] = Query(None),
    end_date: Optional[datetime.datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    usecase = ListBalanceSnapshots(request.app.state.balance_repo)
    filters = BalanceFilters(
        wallet_addresses=wallet_addresses,
        network_names=network_names,
        start_date=start_date,
        end_date=end_date,
    )
    return await list_balances_handler(usecase, filters, PaginationParams(page=page, limit=limit))


@router.get("/latest", response_model=List[BalanceSnapshotWithDetails])
async def get_latest_balances(request: Request):
    return await latest_balances_handler(GetLatestBalances(request.app.state.balance_repo))


@router.get("/summary", response_model=BalanceSummaryResponse)
async def get_balance_summary(request: Request):
    return await balance_summary_handler(GetBalanceSummary(request.app.state.balance_repo))


@router.get(
    "/history/{wallet_address}/{network_name}",
    response_model=List[BalanceSnapshotWithDetails],
)
async def get_balance_history(
    wallet_address: str,
    network_name: str,
    request: Request,
    start_date: Optional[datetime.datetime] = Query(None),
    end_date: Optional[datetime.datetime] = Query(None),
):
    usecase = GetBalanceHistory(request.app.state.balance_repo)
    return await balance_history_handler(usecase, wallet_address, network_name, start_date, end_date)


@router.get("/periodic", response_model=List[PeriodicBalanceSnapshot])
async def get_periodic_samples(
    request: Request,
    interval_hours: int = Query(..., description="Bucket width in hours"),
    position: str = Query(POSITION_LAST, description="'first' or 'last' snapshot of each bucket"),
    filters: PeriodicSampleFilters = Depends(sample_filters),
):
    usecase = GetPeriodicSamples(request.app.state.balance_repo)
    return await periodic_samples_handler(usecase, interval_hours, position, filters)


@router.get("/time-series", response_model=List[PeriodicBalanceSnapshot])
async def get_time_series(
    request: Request,
    max_points: int = Query(100, description="Upper bound on buckets per (wallet, network) series"),
    filters: PeriodicSampleFilters = Depends(sample_filters),
):
    usecase = GetTimeSeries(request.app.state.balance_repo)
    return await time_series_handler(usecase, filters, max_points)


@router.get("/wallet-time-series", response_model=WalletTimeSeriesResponse)
async def get_wallet_time_series(
    request: Request,
    max_points: int = Query(100, description="Points per wallet series"),
    filters: PeriodicSampleFilters = Depends(sample_filters),
):
    usecase = GetWalletTimeSeries(request.app.state.balance_repo, request.app.state.wallet_repo)
    return await wallet_time_series_handler(usecase, filters.wallet_addresses, max_points, filters)


@router.get("/networks", response_model=List[NetworkResponse])
async def list_networks(request: Request):
    return await list_networks_handler(ListNetworks(request.app.state.network_repo))


@router.get("/wallets", response_model=List[WalletResponse])
async def list_wallets(request: Request):
    return await list_wallets_handler(ListWallets(request.app.state.wallet_repo))
