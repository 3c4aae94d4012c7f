import datetime

import pytest

from balance_tracker.domain.balance.entity import BalanceSnapshotWithDetails
from balance_tracker.domain.balance.exceptions import QueryValidationError
from balance_tracker.domain.balance.sampling import (
    MAX_INTERVAL_HOURS,
    interval_for_max_points,
    plan_buckets,
    sample_wallet_series,
    truncate_to_hour,
    validate_interval_hours,
    validate_position,
    validate_positive_int,
)

T0 = datetime.datetime(2024, 1, 1, 0, 0, tzinfo=datetime.timezone.utc)


def make_snapshot(snapshot_id: int, hours: float, balance: str = "100") -> BalanceSnapshotWithDetails:
    timestamp = T0 + datetime.timedelta(hours=hours)
    return BalanceSnapshotWithDetails(
        id=snapshot_id,
        wallet_id=1,
        network_id=1,
        balance=balance,
        block_number=1000 + snapshot_id,
        timestamp=timestamp,
        created_at=timestamp,
        wallet_address="0xabc",
        wallet_label="binance",
        network_name="ETH",
        network_symbol="ERC20",
        is_native=False,
    )


class TestValidation:
    """Test read-path parameter validation"""

    @pytest.mark.parametrize("position", ["first", "last"])
    def test_valid_positions(self, position):
        assert validate_position(position) == position

    @pytest.mark.parametrize("position", ["middle", "", "LAST"])
    def test_invalid_position(self, position):
        with pytest.raises(QueryValidationError, match="Invalid position"):
            validate_position(position)

    @pytest.mark.parametrize("value", [0, -3, 1.5, "6", True, None])
    def test_invalid_positive_int(self, value):
        with pytest.raises(QueryValidationError, match="interval_hours"):
            validate_positive_int(value, "interval_hours")

    def test_valid_positive_int(self):
        assert validate_positive_int(6, "interval_hours") == 6

    def test_interval_hours_upper_bound(self):
        assert validate_interval_hours(MAX_INTERVAL_HOURS) == MAX_INTERVAL_HOURS
        with pytest.raises(QueryValidationError, match="at most"):
            validate_interval_hours(MAX_INTERVAL_HOURS + 1)

    def test_interval_hours_bound_stays_within_bigint_seconds(self):
        assert MAX_INTERVAL_HOURS * 3600 < 2**63 - 1
        plan = plan_buckets(T0, T0 + datetime.timedelta(hours=1), MAX_INTERVAL_HOURS)
        assert plan.bucket_count == 1


class TestPlanBuckets:
    """Test bucket layout over the data span"""

    def test_thirteen_hour_span_with_six_hour_interval(self):
        """13h of data in 6h buckets needs three buckets"""
        plan = plan_buckets(T0, T0 + datetime.timedelta(hours=13), 6)

        assert plan.bucket_count == 3
        assert plan.total_hours == 13

    def test_start_is_truncated_to_hour(self):
        first = T0 + datetime.timedelta(minutes=45)
        plan = plan_buckets(first, first + datetime.timedelta(hours=2), 1)

        assert plan.start == T0
        assert plan.first_timestamp == first
        # 00:45 -> 02:45 touches the 00, 01 and 02 buckets
        assert plan.bucket_count == 3

    def test_bucket_bounds(self):
        plan = plan_buckets(T0, T0 + datetime.timedelta(hours=13), 6)

        assert plan.bounds(0) == (T0, T0 + datetime.timedelta(hours=6))
        assert plan.bounds(2) == (
            T0 + datetime.timedelta(hours=12),
            T0 + datetime.timedelta(hours=18),
        )

    def test_expected_periods_counts_truncated_start(self):
        """05:30 to 17:30 in 6h buckets starts at 05:00 and needs three buckets"""
        first = T0 + datetime.timedelta(hours=5, minutes=30)
        plan = plan_buckets(first, first + datetime.timedelta(hours=12), 6)
        periodic = plan.annotate(make_snapshot(1, 17.5), 2)

        assert plan.bucket_count == 3
        assert periodic.expected_periods == 3
        assert periodic.period_start <= periodic.timestamp < periodic.period_end

    def test_zero_span_has_no_buckets(self):
        assert plan_buckets(T0, T0, 6) is None

    def test_annotate_adds_period_metadata(self):
        plan = plan_buckets(T0, T0 + datetime.timedelta(hours=13), 6)
        snapshot = make_snapshot(7, 7)

        periodic = plan.annotate(snapshot, 1)

        assert periodic.id == 7
        assert periodic.period_index == 1
        assert periodic.period_start == T0 + datetime.timedelta(hours=6)
        assert periodic.period_end == T0 + datetime.timedelta(hours=12)
        assert periodic.period_start <= periodic.timestamp < periodic.period_end
        assert periodic.expected_periods == 3

    def test_truncate_to_hour(self):
        value = datetime.datetime(2024, 5, 3, 17, 59, 59, 999, tzinfo=datetime.timezone.utc)
        assert truncate_to_hour(value) == datetime.datetime(2024, 5, 3, 17, tzinfo=datetime.timezone.utc)


class TestIntervalForMaxPoints:
    """Test bucket width derivation for time series"""

    def test_minimum_interval_is_one_hour(self):
        assert interval_for_max_points(3, 100) == 1

    def test_ceil_division(self):
        assert interval_for_max_points(100, 10) == 10
        assert interval_for_max_points(101, 10) == 11

    def test_bucket_count_stays_within_max_points(self):
        """Buckets over the span never exceed max_points plus one for hour truncation"""
        first = T0 + datetime.timedelta(minutes=30)
        for total_hours, max_points in [(13, 3), (240, 24), (1000, 7), (5.5, 2)]:
            last = first + datetime.timedelta(hours=total_hours)
            interval = interval_for_max_points(total_hours, max_points)
            plan = plan_buckets(first, last, interval)
            assert plan.bucket_count <= max_points + 1

    def test_invalid_max_points(self):
        with pytest.raises(QueryValidationError):
            interval_for_max_points(10, 0)


class TestSampleWalletSeries:
    """Test exact-count wallet series sampling"""

    @pytest.fixture
    def history(self):
        return [make_snapshot(i, i) for i in range(1, 6)]

    def test_max_points_one_returns_latest(self, history):
        result = sample_wallet_series(history, 1)
        assert [s.id for s in result] == [5]

    def test_max_points_two_returns_endpoints(self, history):
        result = sample_wallet_series(history, 2)
        assert [s.id for s in result] == [1, 5]

    def test_interior_drawn_with_injected_sampler(self, history):
        calls = []

        def sampler(population, k):
            calls.append(([s.id for s in population], k))
            # Deliberately out of order; the result must still be sorted
            return [population[2], population[0]]

        result = sample_wallet_series(history, 4, sampler=sampler)

        assert calls == [([2, 3, 4], 2)]
        assert [s.id for s in result] == [1, 2, 4, 5]

    def test_request_larger_than_history_returns_everything(self, history):
        result = sample_wallet_series(history, 50)
        assert [s.id for s in result] == [1, 2, 3, 4, 5]

    def test_default_sampler_keeps_invariants(self):
        history = [make_snapshot(i, i) for i in range(1, 40)]

        result = sample_wallet_series(history, 10)

        assert len(result) == 10
        assert result[0].id == 1
        assert result[-1].id == 39
        assert [s.timestamp for s in result] == sorted(s.timestamp for s in result)
        assert len({s.id for s in result}) == 10

    def test_unsorted_input_is_ordered_by_timestamp(self, history):
        result = sample_wallet_series(list(reversed(history)), 2)
        assert [s.id for s in result] == [1, 5]

    def test_empty_history(self):
        assert sample_wallet_series([], 5) == []

    def test_invalid_max_points(self, history):
        with pytest.raises(QueryValidationError):
            sample_wallet_series(history, 0)
