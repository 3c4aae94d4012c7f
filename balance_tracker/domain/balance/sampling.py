"""
Downsampling of balance time series.

Buckets are laid over the span actually covered by the data, not over a
calendar grid: the first bucket starts at the hour-truncated earliest
timestamp and buckets are added until the latest timestamp falls inside one.
Bucket ``i`` covers ``[start + i * interval, start + (i + 1) * interval)``.
"""

import datetime
import math
import random
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from balance_tracker.domain.balance.entity import (
    BalanceSnapshotWithDetails,
    PeriodicBalanceSnapshot,
)
from balance_tracker.domain.balance.exceptions import QueryValidationError

POSITION_FIRST = "first"
POSITION_LAST = "last"
POSITIONS = (POSITION_FIRST, POSITION_LAST)

# Same signature as random.sample(population, k)
Sampler = Callable[[Sequence, int], List]

# Widest accepted bucket, about a century
MAX_INTERVAL_HOURS = 24 * 366 * 100


def validate_position(position: str) -> str:
    if position not in POSITIONS:
        raise QueryValidationError(
            f"Invalid position '{position}', expected one of {', '.join(POSITIONS)}"
        )
    return position


def validate_positive_int(value, name: str, maximum: Optional[int] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise QueryValidationError(f"{name} must be a positive integer, got {value!r}")
    if maximum is not None and value > maximum:
        raise QueryValidationError(f"{name} must be at most {maximum}, got {value!r}")
    return value


def validate_interval_hours(interval_hours) -> int:
    return validate_positive_int(interval_hours, "interval_hours", MAX_INTERVAL_HOURS)


@dataclass(frozen=True)
class BucketPlan:
    start: datetime.datetime
    interval_hours: int
    bucket_count: int
    first_timestamp: datetime.datetime
    last_timestamp: datetime.datetime
    total_hours: float

    @property
    def interval_seconds(self) -> int:
        return self.interval_hours * 3600

    def bounds(self, index: int) -> Tuple[datetime.datetime, datetime.datetime]:
        width = datetime.timedelta(hours=self.interval_hours)
        period_start = self.start + width * index
        return period_start, period_start + width

    def annotate(
        self, snapshot: BalanceSnapshotWithDetails, index: int
    ) -> PeriodicBalanceSnapshot:
        period_start, period_end = self.bounds(index)
        return PeriodicBalanceSnapshot(
            **snapshot.model_dump(),
            period_start=period_start,
            period_end=period_end,
            period_index=index,
            total_hours=self.total_hours,
            first_timestamp=self.first_timestamp,
            last_timestamp=self.last_timestamp,
            expected_periods=self.bucket_count,
        )


def truncate_to_hour(timestamp: datetime.datetime) -> datetime.datetime:
    return timestamp.replace(minute=0, second=0, microsecond=0)


def span_hours(first: datetime.datetime, last: datetime.datetime) -> float:
    return (last - first).total_seconds() / 3600


def plan_buckets(
    first_timestamp: datetime.datetime,
    last_timestamp: datetime.datetime,
    interval_hours: int,
) -> Optional[BucketPlan]:
    """
    Build the bucket layout for data spanning ``[first_timestamp, last_timestamp]``.

    Returns None when the span is zero (or inverted): there is nothing to
    downsample and callers treat that as insufficient data.
    """
    validate_interval_hours(interval_hours)
    total_hours = span_hours(first_timestamp, last_timestamp)
    if total_hours <= 0:
        return None

    start = truncate_to_hour(first_timestamp)
    interval_seconds = interval_hours * 3600
    bucket_count = int((last_timestamp - start).total_seconds() // interval_seconds) + 1

    return BucketPlan(
        start=start,
        interval_hours=interval_hours,
        bucket_count=bucket_count,
        first_timestamp=first_timestamp,
        last_timestamp=last_timestamp,
        total_hours=total_hours,
    )


def interval_for_max_points(total_hours: float, max_points: int) -> int:
    """Bucket width in whole hours so that roughly ``max_points`` buckets cover the span"""
    validate_positive_int(max_points, "max_points")
    return max(1, math.ceil(total_hours / max_points))


def sample_wallet_series(
    snapshots: Sequence[BalanceSnapshotWithDetails],
    max_points: int,
    sampler: Optional[Sampler] = None,
) -> List[BalanceSnapshotWithDetails]:
    """
    Pick exactly ``min(max_points, len(snapshots))`` snapshots.

    The earliest and latest snapshots are always kept; the remaining slots are
    filled with a uniform random draw, without replacement, from the interior.
    ``max_points == 1`` returns only the latest snapshot.
    """
    validate_positive_int(max_points, "max_points")
    if not snapshots:
        return []

    ordered = sorted(snapshots, key=lambda s: (s.timestamp, s.id))
    if max_points == 1:
        return [ordered[-1]]
    # Interior no larger than the request: everything is returned, no padding
    if len(ordered) <= max_points:
        return ordered

    first, last = ordered[0], ordered[-1]
    interior = ordered[1:-1]
    wanted = max_points - 2
    middle = list((sampler or random.sample)(interior, wanted)) if wanted else []

    return sorted([first, *middle, last], key=lambda s: (s.timestamp, s.id))
