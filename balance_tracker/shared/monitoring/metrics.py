from prometheus_client import Counter, Histogram, Gauge, Info
import time
from functools import wraps
from typing import Callable, Any
import asyncio

# API Request Metrics
api_requests_total = Counter(
    'api_requests_total',
    'Total number of API requests',
    ['method', 'endpoint', 'status_code']
)

api_request_duration_seconds = Histogram(
    'api_request_duration_seconds',
    'API request duration in seconds',
    ['method', 'endpoint']
)

# Balance collection metrics
balance_fetch_total = Counter(
    'balance_fetch_total',
    'Balance lookups per network by outcome (success, fallback, default)',
    ['network', 'status']
)

balance_fetch_duration_seconds = Histogram(
    'balance_fetch_duration_seconds',
    'Duration of a single balance lookup',
    ['network']
)

collection_cycles_total = Counter(
    'collection_cycles_total',
    'Balance collection cycles by outcome (success, error, skipped)',
    ['status']
)

collection_cycle_duration_seconds = Histogram(
    'collection_cycle_duration_seconds',
    'Duration of a full balance collection cycle'
)

snapshots_stored_total = Counter(
    'snapshots_stored_total',
    'Total number of balance snapshots persisted'
)

unresolved_pairs_total = Counter(
    'unresolved_pairs_total',
    'Fetched balances skipped because wallet or network was not in the lookup cache'
)

balance_query_duration_seconds = Histogram(
    'balance_query_duration_seconds',
    'Duration of balance history and downsampling queries',
    ['query']
)

network_connection_status = Gauge(
    'network_connection_status',
    'Result of the last connectivity probe (1=up, 0=down)',
    ['network']
)

# Blockchain Metrics
blockchain_operations_total = Counter(
    'blockchain_operations_total',
    'Total blockchain operations',
    ['operation', 'status']
)

blockchain_operation_duration_seconds = Histogram(
    'blockchain_operation_duration_seconds',
    'Blockchain operation duration',
    ['operation']
)

# Database Metrics
database_operations_total = Counter(
    'database_operations_total',
    'Total database operations',
    ['operation', 'table', 'status']
)

database_operation_duration_seconds = Histogram(
    'database_operation_duration_seconds',
    'Database operation duration',
    ['operation', 'table']
)

database_connection_pool_size = Gauge(
    'database_connection_pool_size',
    'Current database connection pool size'
)

database_connection_pool_used = Gauge(
    'database_connection_pool_used',
    'Current database connection pool used connections'
)

database_connection_pool_idle = Gauge(
    'database_connection_pool_idle',
    'Current database connection pool idle connections'
)

database_health_status = Gauge(
    'database_health_status',
    'Database health status (1=healthy, 0=unhealthy)'
)

# System Metrics
app_info = Info(
    'app_info',
    'Application information'
)

# Error Metrics
errors_total = Counter(
    'errors_total',
    'Total number of errors',
    ['error_type', 'component']
)

# Decorators for automatic metrics collection

def track_time(metric: Histogram, labels: dict = None):
    """Decorator to track execution time"""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            start_time = time.time()
            try:
                return await func(*args, **kwargs)
            finally:
                duration = time.time() - start_time
                if labels:
                    metric.labels(**labels).observe(duration)
                else:
                    metric.observe(duration)

        @wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            start_time = time.time()
            try:
                return func(*args, **kwargs)
            finally:
                duration = time.time() - start_time
                if labels:
                    metric.labels(**labels).observe(duration)
                else:
                    metric.observe(duration)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator

# Metrics collection functions

def record_balance_fetch(network: str, status: str, duration: float = None):
    """Record one balance lookup outcome"""
    balance_fetch_total.labels(network=network, status=status).inc()
    if duration is not None:
        balance_fetch_duration_seconds.labels(network=network).observe(duration)

def record_collection_cycle(status: str, duration: float = None, stored: int = 0):
    """Record a collection cycle outcome"""
    collection_cycles_total.labels(status=status).inc()
    if duration is not None:
        collection_cycle_duration_seconds.observe(duration)
    if stored:
        snapshots_stored_total.inc(stored)

def record_unresolved_pair():
    unresolved_pairs_total.inc()

def record_network_status(network: str, is_connected: bool):
    network_connection_status.labels(network=network).set(1 if is_connected else 0)

def record_blockchain_operation(operation: str, status: str, duration: float = None):
    """Record a blockchain operation"""
    blockchain_operations_total.labels(operation=operation, status=status).inc()
    if duration is not None:
        blockchain_operation_duration_seconds.labels(operation=operation).observe(duration)

def record_database_operation(operation: str, table: str, status: str, duration: float = None):
    """Record a database operation"""
    database_operations_total.labels(operation=operation, table=table, status=status).inc()
    if duration is not None:
        database_operation_duration_seconds.labels(operation=operation, table=table).observe(duration)

def record_error(error_type: str, component: str):
    """Record an error"""
    errors_total.labels(error_type=error_type, component=component).inc()

def set_app_info(version: str, environment: str):
    """Set application information"""
    app_info.info({
        'version': version,
        'environment': environment
    })

# Context managers for tracking operations

class MetricsContext:
    """Context manager for tracking metrics"""

    def __init__(self, operation: str, component: str, table: str = "unknown"):
        self.operation = operation
        self.component = component
        self.table = table
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time

        if exc_type is None:
            status = "success"
        else:
            status = "error"
            record_error(exc_type.__name__, self.component)

        if self.component == "blockchain":
            record_blockchain_operation(self.operation, status, duration)
        elif self.component == "database":
            record_database_operation(self.operation, self.table, status, duration)
