import datetime
import math
import time
from typing import Callable, List, Optional, Tuple

from balance_tracker.domain.balance.entity import (
    BalanceFilters,
    BalanceSnapshot,
    BalanceSnapshotWithDetails,
    NewBalanceSnapshot,
    PaginatedSnapshots,
    PaginationInfo,
    PaginationParams,
    PeriodicBalanceSnapshot,
    PeriodicSampleFilters,
)
from balance_tracker.domain.balance.exceptions import (
    PersistenceError,
    QueryValidationError,
)
from balance_tracker.domain.balance.repository import BalanceRepository
from balance_tracker.domain.balance.sampling import (
    POSITION_FIRST,
    POSITION_LAST,
    BucketPlan,
    Sampler,
    interval_for_max_points,
    plan_buckets,
    sample_wallet_series,
    span_hours,
    validate_interval_hours,
    validate_position,
    validate_positive_int,
)
from balance_tracker.shared.monitoring.logging import LoggerMixin, log_database_operation
from balance_tracker.shared.monitoring.metrics import (
    MetricsContext,
    record_database_operation,
)

SNAPSHOT_COLUMNS = "id, wallet_id, network_id, balance, block_number, timestamp, created_at"

SNAPSHOT_WITH_DETAILS = """
    SELECT
        bs.id, bs.wallet_id, bs.network_id, bs.balance, bs.block_number,
        bs.timestamp, bs.created_at,
        w.address AS wallet_address,
        w.label AS wallet_label,
        n.name AS network_name,
        n.symbol AS network_symbol,
        n.is_native
    FROM balance_snapshots bs
    JOIN wallets w ON bs.wallet_id = w.id
    JOIN networks n ON bs.network_id = n.id
"""

SNAPSHOT_JOINS = """
    FROM balance_snapshots bs
    JOIN wallets w ON bs.wallet_id = w.id
    JOIN networks n ON bs.network_id = n.id
"""


def _sample_filter_clause(filters: PeriodicSampleFilters, params: list) -> str:
    """Append filter values to ``params`` and return the matching WHERE body"""
    clauses = ["1=1"]
    if filters.wallet_addresses:
        params.append(list(filters.wallet_addresses))
        clauses.append(f"w.address = ANY(${len(params)}::text[])")
    if filters.network_names:
        params.append(list(filters.network_names))
        clauses.append(f"n.name = ANY(${len(params)}::text[])")
    if filters.since_date:
        params.append(filters.since_date)
        clauses.append(f"bs.timestamp >= ${len(params)}")
    return " AND ".join(clauses)


def _listing_filter_clause(filters: BalanceFilters, params: list) -> str:
    clauses = ["1=1"]
    if filters.wallet_addresses:
        params.append(list(filters.wallet_addresses))
        clauses.append(f"w.address = ANY(${len(params)}::text[])")
    if filters.network_names:
        params.append(list(filters.network_names))
        clauses.append(f"n.name = ANY(${len(params)}::text[])")
    if filters.start_date:
        params.append(filters.start_date)
        clauses.append(f"bs.timestamp >= ${len(params)}")
    if filters.end_date:
        params.append(filters.end_date)
        clauses.append(f"bs.timestamp <= ${len(params)}")
    return " AND ".join(clauses)


def _validate_date_range(
    start_date: Optional[datetime.datetime], end_date: Optional[datetime.datetime]
) -> None:
    if start_date and end_date and start_date > end_date:
        raise QueryValidationError(
            f"start_date {start_date.isoformat()} is after end_date {end_date.isoformat()}"
        )


class PostgreSQLBalanceRepository(BalanceRepository, LoggerMixin):
    """
    Append-only store of balance snapshots and the downsampling queries over it.

    Every write and read is a single set-oriented statement; the periodic
    sampling reads run inside one read-only REPEATABLE READ transaction so
    the span and the bucket rows come from the same snapshot of the table.
    """

    def __init__(self, pool, sampler: Optional[Sampler] = None):
        self._pool = pool
        self._sampler = sampler

    async def create_snapshot(self, snapshot: NewBalanceSnapshot) -> BalanceSnapshot:
        try:
            with MetricsContext("create_snapshot", "database", "balance_snapshots"):
                async with self._pool.acquire() as conn:
                    row = await conn.fetchrow(
                        "INSERT INTO balance_snapshots "
                        "(wallet_id, network_id, balance, block_number, timestamp) "
                        f"VALUES ($1, $2, $3, $4, $5) RETURNING {SNAPSHOT_COLUMNS}",
                        snapshot.wallet_id,
                        snapshot.network_id,
                        snapshot.balance,
                        snapshot.block_number,
                        snapshot.timestamp,
                    )
        except Exception as e:
            self.logger.error(f"Failed to insert balance snapshot - Error: {str(e)}")
            raise PersistenceError(f"Failed to insert balance snapshot: {e}") from e
        return BalanceSnapshot(**dict(row))

    async def bulk_create_snapshots(self, snapshots: List[NewBalanceSnapshot]) -> int:
        """
        Insert the whole batch with one statement, whatever its size.

        Returns the number of rows written.
        """
        if not snapshots:
            return 0

        start_time = time.time()
        try:
            async with self._pool.acquire() as conn:
                result = await conn.execute(
                    "INSERT INTO balance_snapshots "
                    "(wallet_id, network_id, balance, block_number, timestamp) "
                    "SELECT * FROM unnest("
                    "$1::int[], $2::int[], $3::text[], $4::bigint[], $5::timestamptz[])",
                    [s.wallet_id for s in snapshots],
                    [s.network_id for s in snapshots],
                    [s.balance for s in snapshots],
                    [s.block_number for s in snapshots],
                    [s.timestamp for s in snapshots],
                )
        except Exception as e:
            duration = time.time() - start_time
            self.logger.error(
                f"Bulk insert failed - Rows: {len(snapshots)}, Error: {str(e)}, Duration: {duration:.3f}s",
                extra=log_database_operation("bulk_insert", "balance_snapshots", rows=len(snapshots)),
            )
            record_database_operation("bulk_create_snapshots", "balance_snapshots", "error", duration)
            raise PersistenceError(f"Failed to insert {len(snapshots)} balance snapshots: {e}") from e

        duration = time.time() - start_time
        # result looks like "INSERT 0 42"
        inserted = int(result.split()[-1])
        self.logger.info(
            f"Balance snapshots stored - Rows: {inserted}, Duration: {duration:.3f}s",
            extra=log_database_operation("bulk_insert", "balance_snapshots", rows=inserted),
        )
        record_database_operation("bulk_create_snapshots", "balance_snapshots", "success", duration)
        return inserted

    async def get_latest_balances(self) -> List[BalanceSnapshotWithDetails]:
        query = f"""
            SELECT DISTINCT ON (bs.wallet_id, bs.network_id) *
            FROM ({SNAPSHOT_WITH_DETAILS} WHERE w.is_active = true) bs
            ORDER BY bs.wallet_id, bs.network_id, bs.timestamp DESC, bs.id DESC
        """
        with MetricsContext("get_latest_balances", "database", "balance_snapshots"):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query)
        return [BalanceSnapshotWithDetails(**dict(row)) for row in rows]

    async def get_latest_balance(
        self, wallet_address: str, network_name: str
    ) -> Optional[BalanceSnapshotWithDetails]:
        with MetricsContext("get_latest_balance", "database", "balance_snapshots"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"{SNAPSHOT_WITH_DETAILS} WHERE w.address = $1 AND n.name = $2 "
                    "ORDER BY bs.timestamp DESC, bs.id DESC LIMIT 1",
                    wallet_address,
                    network_name,
                )
        return BalanceSnapshotWithDetails(**dict(row)) if row else None

    async def get_balance_history(
        self,
        wallet_address: str,
        network_name: str,
        start_date: Optional[datetime.datetime] = None,
        end_date: Optional[datetime.datetime] = None,
    ) -> List[BalanceSnapshotWithDetails]:
        _validate_date_range(start_date, end_date)
        params: list = [wallet_address, network_name]
        where = "w.address = $1 AND n.name = $2"
        if start_date:
            params.append(start_date)
            where += f" AND bs.timestamp >= ${len(params)}"
        if end_date:
            params.append(end_date)
            where += f" AND bs.timestamp <= ${len(params)}"

        with MetricsContext("get_balance_history", "database", "balance_snapshots"):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    f"{SNAPSHOT_WITH_DETAILS} WHERE {where} ORDER BY bs.timestamp ASC, bs.id ASC",
                    *params,
                )
        return [BalanceSnapshotWithDetails(**dict(row)) for row in rows]

    async def get_balance_snapshots(
        self, filters: BalanceFilters, pagination: PaginationParams
    ) -> PaginatedSnapshots:
        _validate_date_range(filters.start_date, filters.end_date)
        params: list = []
        where = _listing_filter_clause(filters, params)

        with MetricsContext("get_balance_snapshots", "database", "balance_snapshots"):
            async with self._pool.acquire() as conn:
                total = await conn.fetchval(
                    f"SELECT COUNT(*) {SNAPSHOT_JOINS} WHERE {where}", *params
                )
                rows = await conn.fetch(
                    f"{SNAPSHOT_WITH_DETAILS} WHERE {where} "
                    "ORDER BY bs.timestamp DESC, bs.id DESC "
                    f"LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}",
                    *params,
                    pagination.limit,
                    pagination.offset,
                )

        total = int(total or 0)
        total_pages = math.ceil(total / pagination.limit)
        return PaginatedSnapshots(
            data=[BalanceSnapshotWithDetails(**dict(row)) for row in rows],
            pagination=PaginationInfo(
                page=pagination.page,
                limit=pagination.limit,
                total=total,
                total_pages=total_pages,
                has_next=pagination.page < total_pages,
                has_prev=pagination.page > 1,
            ),
        )

    async def _get_span(
        self, conn, filters: PeriodicSampleFilters
    ) -> Optional[Tuple[datetime.datetime, datetime.datetime]]:
        params: list = []
        where = _sample_filter_clause(filters, params)
        row = await conn.fetchrow(
            "SELECT MIN(bs.timestamp) AS first_timestamp, MAX(bs.timestamp) AS last_timestamp "
            f"{SNAPSHOT_JOINS} WHERE {where}",
            *params,
        )
        if not row or row["first_timestamp"] is None:
            return None
        return row["first_timestamp"], row["last_timestamp"]

    async def _select_bucket_rows(
        self, conn, plan: BucketPlan, position: str, filters: PeriodicSampleFilters
    ) -> List[PeriodicBalanceSnapshot]:
        params: list = []
        where = _sample_filter_clause(filters, params)
        params.extend([plan.start, plan.last_timestamp, plan.interval_seconds])
        start_ref, last_ref, width_ref = (f"${len(params) - i}" for i in (2, 1, 0))
        order = "ASC" if position == POSITION_FIRST else "DESC"

        query = f"""
            WITH bucketed AS (
                SELECT
                    bs.id, bs.wallet_id, bs.network_id, bs.balance, bs.block_number,
                    bs.timestamp, bs.created_at,
                    w.address AS wallet_address,
                    w.label AS wallet_label,
                    n.name AS network_name,
                    n.symbol AS network_symbol,
                    n.is_native,
                    FLOOR(
                        EXTRACT(EPOCH FROM (bs.timestamp - {start_ref}::timestamptz))
                        / {width_ref}::bigint
                    )::int AS period_index
                {SNAPSHOT_JOINS}
                WHERE {where} AND bs.timestamp <= {last_ref}::timestamptz
            ),
            ranked AS (
                SELECT *,
                    ROW_NUMBER() OVER (
                        PARTITION BY period_index, wallet_id, network_id
                        ORDER BY timestamp {order}, id {order}
                    ) AS rn
                FROM bucketed
            )
            SELECT * FROM ranked
            WHERE rn = 1
            ORDER BY period_index, wallet_id, network_id
        """
        rows = await conn.fetch(query, *params)
        return [
            plan.annotate(BalanceSnapshotWithDetails(**dict(row)), row["period_index"])
            for row in rows
            if 0 <= row["period_index"] < plan.bucket_count
        ]

    async def _sample_buckets(
        self,
        operation: str,
        position: str,
        filters: PeriodicSampleFilters,
        choose_interval: Callable[[float], int],
    ) -> List[PeriodicBalanceSnapshot]:
        """Span, bucket width and bucket rows all come from one consistent read"""
        with MetricsContext(operation, "database", "balance_snapshots"):
            async with self._pool.acquire() as conn:
                async with conn.transaction(isolation="repeatable_read", readonly=True):
                    span = await self._get_span(conn, filters)
                    if span is None:
                        return []
                    interval_hours = choose_interval(span_hours(*span))
                    plan = plan_buckets(span[0], span[1], interval_hours)
                    if plan is None:
                        self.logger.info(f"{operation} requested over a zero-length span")
                        return []
                    samples = await self._select_bucket_rows(conn, plan, position, filters)

        self.logger.debug(
            f"{operation} - Interval: {plan.interval_hours}h, Position: {position}, "
            f"Buckets: {plan.bucket_count}, Rows: {len(samples)}"
        )
        return samples

    async def get_periodic_samples(
        self, interval_hours: int, position: str, filters: PeriodicSampleFilters
    ) -> List[PeriodicBalanceSnapshot]:
        """
        One snapshot per (bucket, wallet, network): the earliest in the bucket
        for ``first``, the latest for ``last``. Pairs without data in a bucket
        produce no row for it. A zero data span yields an empty list.
        """
        validate_interval_hours(interval_hours)
        validate_position(position)
        return await self._sample_buckets(
            "get_periodic_samples", position, filters, lambda total_hours: interval_hours
        )

    async def get_time_series(
        self, filters: PeriodicSampleFilters, max_points: int
    ) -> List[PeriodicBalanceSnapshot]:
        """Roughly ``max_points`` buckets over the data's actual span, latest value per bucket"""
        validate_positive_int(max_points, "max_points")
        return await self._sample_buckets(
            "get_time_series",
            POSITION_LAST,
            filters,
            lambda total_hours: interval_for_max_points(total_hours, max_points),
        )

    async def get_wallet_time_series(
        self, wallet_address: str, max_points: int, filters: PeriodicSampleFilters
    ) -> List[BalanceSnapshotWithDetails]:
        validate_positive_int(max_points, "max_points")
        scoped = filters.model_copy(update={"wallet_addresses": [wallet_address]})
        params: list = []
        where = _sample_filter_clause(scoped, params)

        with MetricsContext("get_wallet_time_series", "database", "balance_snapshots"):
            async with self._pool.acquire() as conn:
                if max_points == 1:
                    rows = await conn.fetch(
                        f"{SNAPSHOT_WITH_DETAILS} WHERE {where} "
                        "ORDER BY bs.timestamp DESC, bs.id DESC LIMIT 1",
                        *params,
                    )
                else:
                    rows = await conn.fetch(
                        f"{SNAPSHOT_WITH_DETAILS} WHERE {where} "
                        "ORDER BY bs.timestamp ASC, bs.id ASC",
                        *params,
                    )

        snapshots = [BalanceSnapshotWithDetails(**dict(row)) for row in rows]
        return sample_wallet_series(snapshots, max_points, self._sampler)

    async def cleanup_old_snapshots(self, retention_days: int) -> int:
        validate_positive_int(retention_days, "retention_days")

        with MetricsContext("cleanup_old_snapshots", "database", "balance_snapshots"):
            async with self._pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM balance_snapshots "
                    "WHERE timestamp < NOW() - make_interval(days => $1)",
                    retention_days,
                )

        # result looks like "DELETE 12"
        deleted = int(result.split()[-1])
        self.logger.info(
            f"Cleaned up {deleted} balance snapshots older than {retention_days} days",
            extra=log_database_operation("cleanup", "balance_snapshots", deleted=deleted),
        )
        return deleted
