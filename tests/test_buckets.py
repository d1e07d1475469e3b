"""
Tests for calendar time-bucket aggregation.

Tests verify wall-clock truncation, per-group sums and the volume
profiles.
"""

from datetime import datetime

import pytest
import pytz

from tspm.analysis.buckets import (
    CountSample,
    Granularity,
    aggregate,
    average_daily_volume,
    buckets_to_frame,
    truncate,
    volume_profile,
)

MOUNTAIN = pytz.timezone("US/Mountain")


class TestTruncate:
    """Tests for bucket label computation."""

    def test_hour(self):
        assert truncate(datetime(2025, 6, 4, 7, 42, 13), "hour") == datetime(2025, 6, 4, 7)

    def test_day(self):
        assert truncate(datetime(2025, 6, 4, 7, 42), Granularity.DAY) == datetime(2025, 6, 4)

    def test_week_starts_monday(self):
        """2025-06-08 is a Sunday; its ISO week starts 2025-06-02."""
        assert truncate(datetime(2025, 6, 8, 23, 59), "week") == datetime(2025, 6, 2)
        assert truncate(datetime(2025, 6, 2, 0, 0), "week") == datetime(2025, 6, 2)

    def test_month_and_year(self):
        ts = datetime(2025, 6, 4, 7, 42)
        assert truncate(ts, "month") == datetime(2025, 6, 1)
        assert truncate(ts, "year") == datetime(2025, 1, 1)

    def test_wall_clock_not_utc(self):
        """07:30 local lands in the 07:00 bucket, not the UTC hour."""
        ts = MOUNTAIN.localize(datetime(2025, 6, 4, 7, 30))
        assert truncate(ts, "hour") == datetime(2025, 6, 4, 7)

    def test_unknown_granularity(self):
        with pytest.raises(ValueError):
            truncate(datetime(2025, 6, 4), "fortnight")


class TestAggregate:
    """Tests for per-group bucket sums."""

    def test_sums_per_group(self):
        """Samples in the same hour and group are summed."""
        samples = [
            CountSample(datetime(2025, 6, 4, 7, 0), "A", 3),
            CountSample(datetime(2025, 6, 4, 7, 15), "A", 4),
            CountSample(datetime(2025, 6, 4, 7, 30), "B", 2),
            CountSample(datetime(2025, 6, 4, 8, 0), "A", 1),
        ]
        buckets = aggregate(samples, "hour")
        assert [b.label for b in buckets] == [
            datetime(2025, 6, 4, 7),
            datetime(2025, 6, 4, 8),
        ]
        assert buckets[0].values == {"A": 7.0, "B": 2.0}
        assert buckets[0].total == 9.0
        assert buckets[1].values == {"A": 1.0}
        assert buckets[0].label_text == "2025-06-04 07:00"

    def test_chronological_order(self):
        """Unordered input gives ordered buckets."""
        samples = [
            CountSample(datetime(2025, 6, 5, 9), "A", 1),
            CountSample(datetime(2025, 6, 3, 9), "A", 1),
            CountSample(datetime(2025, 6, 4, 9), "A", 1),
        ]
        labels = [b.label for b in aggregate(samples, "day")]
        assert labels == sorted(labels)

    def test_bad_values_count_as_zero(self):
        """NaN, inf and text contribute nothing."""
        samples = [
            CountSample(datetime(2025, 6, 4, 7), "A", float("nan")),
            CountSample(datetime(2025, 6, 4, 7), "A", float("inf")),
            CountSample(datetime(2025, 6, 4, 7), "A", "x"),
            CountSample(datetime(2025, 6, 4, 7), "A", 5),
        ]
        assert aggregate(samples)[0].values == {"A": 5.0}

    def test_empty(self):
        assert aggregate([]) == []

    def test_none_rejected(self):
        with pytest.raises(TypeError):
            aggregate(None)

    def test_missing_group_key_rejected(self):
        """A sample without a group key is refused rather than lost."""
        samples = [
            CountSample(datetime(2025, 6, 4, 7, 15), None, 5.0),
            CountSample(datetime(2025, 6, 4, 7, 15), "A", 1.0),
        ]
        with pytest.raises(TypeError):
            aggregate(samples)

    def test_frame(self):
        """Wide table reads 0 for groups missing from a bucket."""
        samples = [
            CountSample(datetime(2025, 6, 4, 7), "B", 2),
            CountSample(datetime(2025, 6, 4, 8), "A", 1),
        ]
        df = buckets_to_frame(aggregate(samples))
        assert list(df.columns) == ["A", "B"]
        assert df.loc[datetime(2025, 6, 4, 7), "A"] == 0.0
        assert df.loc[datetime(2025, 6, 4, 8), "A"] == 1.0

    def test_frame_empty(self):
        assert buckets_to_frame([]).empty


class TestProfiles:
    """Tests for recurring-slot profiles."""

    @pytest.fixture
    def samples(self):
        return [
            CountSample(datetime(2025, 6, 2, 7, 10), "A", 5),   # Monday
            CountSample(datetime(2025, 6, 3, 7, 40), "B", 3),   # Tuesday
            CountSample(datetime(2025, 6, 3, 17, 0), "A", 2),
            CountSample(datetime(2025, 7, 6, 7, 0), "A", 1),    # Sunday
        ]

    def test_hour_of_day(self, samples):
        assert volume_profile(samples, "hour_of_day") == {7: 9.0, 17: 2.0}

    def test_day_of_week_iso(self, samples):
        assert volume_profile(samples, "day_of_week") == {1: 5.0, 2: 5.0, 7: 1.0}

    def test_month_of_year(self, samples):
        assert volume_profile(samples, "month_of_year") == {6: 10.0, 7: 1.0}

    def test_unknown_profile(self, samples):
        with pytest.raises(ValueError):
            volume_profile(samples, "minute_of_hour")

    def test_average_daily_volume(self, samples):
        """Three calendar days totalling 11."""
        assert average_daily_volume(samples) == pytest.approx(11.0 / 3)

    def test_average_daily_volume_empty(self):
        assert average_daily_volume([]) == 0.0
