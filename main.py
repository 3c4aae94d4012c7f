import time
from contextlib import asynccontextmanager

import asyncpg
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from prometheus_fastapi_instrumentator import Instrumentator

from balance_tracker.application.v1.balance.routers import router as balance_router
from balance_tracker.application.v1.monitoring.routers import router as monitoring_router
from balance_tracker.infrastructure.blockchain.balance.node_repository import (
    Web3BalanceRepository,
)
from balance_tracker.infrastructure.blockchain.balance.resilient_fetcher import (
    ResilientBalanceFetcher,
)
from balance_tracker.infrastructure.config import load_config
from balance_tracker.infrastructure.db.balance.postgresql_repository import (
    PostgreSQLBalanceRepository,
)
from balance_tracker.infrastructure.db.network.postgresql_repository import (
    PostgreSQLNetworkRepository,
)
from balance_tracker.infrastructure.db.wallet.postgresql_repository import (
    PostgreSQLWalletRepository,
)
from balance_tracker.shared.monitoring.balance_scheduler import BalanceMonitoringService
from balance_tracker.shared.monitoring.logging import get_logger, setup_logging
from balance_tracker.shared.monitoring.metrics import (
    api_request_duration_seconds,
    api_requests_total,
    database_connection_pool_idle,
    database_connection_pool_size,
    database_connection_pool_used,
    database_health_status,
    record_error,
    set_app_info,
)

config = load_config()

setup_logging(config.log_level)
logger = get_logger(__name__)


def update_pool_metrics(pool) -> None:
    database_connection_pool_size.set(pool.get_size())
    database_connection_pool_used.set(pool.get_size() - pool.get_idle_size())
    database_connection_pool_idle.set(pool.get_idle_size())


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting Balance Tracker v{config.app_version} ({config.environment})")

    try:
        app.state.config = config

        # Database setup
        pool = await asyncpg.create_pool(config.postgres_dsn)
        app.state.pool = pool
        app.state.wallet_repo = PostgreSQLWalletRepository(pool)
        app.state.network_repo = PostgreSQLNetworkRepository(pool)
        app.state.balance_repo = PostgreSQLBalanceRepository(pool)

        update_pool_metrics(pool)
        database_health_status.set(1)

        # RPC clients, one per configured network
        app.state.blockchain_repo = Web3BalanceRepository(
            config.networks, timeout=config.rpc_timeout_seconds
        )
        app.state.fetcher = ResilientBalanceFetcher(
            app.state.blockchain_repo, app.state.balance_repo
        )

        app.state.balance_monitor = BalanceMonitoringService(
            fetcher=app.state.fetcher,
            blockchain_repo=app.state.blockchain_repo,
            balance_repo=app.state.balance_repo,
            wallet_repo=app.state.wallet_repo,
            network_repo=app.state.network_repo,
            networks=config.networks,
            monitored_wallets=config.monitored_wallets,
        )
        await app.state.balance_monitor.initialize()

        if config.auto_start_monitoring:
            app.state.balance_monitor.start_monitoring(config.monitoring_cron)
        else:
            logger.info("Automatic balance monitoring disabled")

        set_app_info(config.app_version, config.environment)

        logger.info(
            f"Application started - Networks: {len(config.networks)}, "
            f"Wallets: {len(config.monitored_wallets)}"
        )

        yield

    except Exception as e:
        logger.error(f"Failed to start application: {str(e)}")
        record_error(type(e).__name__, "startup")
        raise
    finally:
        logger.info("Shutting down application")

        if hasattr(app.state, "balance_monitor"):
            app.state.balance_monitor.shutdown()

        if hasattr(app.state, "pool"):
            await app.state.pool.close()


app = FastAPI(
    title="Balance Tracker",
    description="Multi-chain wallet balance collection with snapshot history and downsampled time series.",
    version=config.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if config.enable_metrics:
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health", "/docs", "/openapi.json"],
        env_var_name="ENABLE_METRICS",
        inprogress_name="inprogress",
        inprogress_labels=True,
    )
    instrumentator.instrument(app)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    start_time = time.time()
    client_ip = request.client.host if request.client else "unknown"
    quiet = request.url.path in ["/health", "/metrics"]
    log = logger.debug if quiet else logger.info

    log(f"HTTP {request.method} {request.url} from {client_ip}")

    try:
        response = await call_next(request)
        duration = time.time() - start_time

        log(
            f"HTTP {request.method} {request.url} completed - Status: {response.status_code}, Duration: {duration:.3f}s"
        )

        api_requests_total.labels(
            method=request.method,
            endpoint=request.url.path,
            status_code=response.status_code,
        ).inc()
        api_request_duration_seconds.labels(
            method=request.method, endpoint=request.url.path
        ).observe(duration)

        return response

    except Exception as e:
        duration = time.time() - start_time
        logger.error(f"HTTP {request.method} {request.url} failed after {duration:.3f}s: {str(e)}")
        api_requests_total.labels(
            method=request.method, endpoint=request.url.path, status_code=500
        ).inc()
        record_error(type(e).__name__, "http_middleware")
        raise


app.include_router(balance_router)
app.include_router(monitoring_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Database reachability plus per-network RPC probes and collection status"""
    health_info = {
        "status": "ok",
        "version": config.app_version,
        "environment": config.environment,
        "database_connected": False,
        "database_pool_size": 0,
        "database_pool_used": 0,
        "networks": {},
        "monitoring": {},
    }

    if hasattr(app.state, "pool") and app.state.pool:
        try:
            async with app.state.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            health_info["database_connected"] = True
            health_info["database_pool_size"] = app.state.pool.get_size()
            health_info["database_pool_used"] = (
                app.state.pool.get_size() - app.state.pool.get_idle_size()
            )
            update_pool_metrics(app.state.pool)
            database_health_status.set(1)
        except Exception as e:
            health_info["database_error"] = str(e)
            database_health_status.set(0)

    if hasattr(app.state, "blockchain_repo"):
        health_info["networks"] = await app.state.blockchain_repo.test_all_connections()

    if hasattr(app.state, "balance_monitor"):
        health_info["monitoring"] = app.state.balance_monitor.get_status()

    if not health_info["database_connected"]:
        health_info["status"] = "unhealthy"
    elif not all(health_info["networks"].values()):
        health_info["status"] = "degraded"

    return health_info


if config.enable_metrics:

    @app.get("/metrics", tags=["Monitoring"])
    def metrics():
        """Prometheus metrics endpoint"""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/", tags=["Root"])
def root():
    return {
        "message": "Balance Tracker",
        "version": config.app_version,
        "environment": config.environment,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics" if config.enable_metrics else None,
    }
