"""
Time-Bucket Aggregation (Functional Core)

Pure functions only. No I/O, no SQL, no side effects.

Groups raw count samples into fixed calendar buckets and sums them per
grouping key.  Also provides the hour-of-day / day-of-week / month-of-year
volume profiles and the average daily volume used by the volume reports.

Package Location: src/tspm/analysis/buckets.py

Wall-Clock Rule:
    Bucket labels are built from each sample's own calendar fields
    (``ts.year``, ``ts.hour``, ...) and returned as naive datetimes.
    Timestamps are never normalized to UTC first, so a sample at 07:30
    local time always lands in the 07:00 bucket for that intersection.

Sparse Rule:
    Only buckets that received at least one sample are returned.  Filling
    an axis with empty buckets is left to the consumer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Union

import numpy as np
import pandas as pd


class Granularity(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class CountSample(NamedTuple):
    timestamp: datetime
    group_key: str
    value: float


@dataclass
class Bucket:
    label: datetime
    values: Dict[str, float] = field(default_factory=dict)

    @property
    def label_text(self) -> str:
        return self.label.strftime("%Y-%m-%d %H:00")

    @property
    def total(self) -> float:
        return float(sum(self.values.values()))


_PROFILES: Dict[str, str] = {
    "hour_of_day": "hour",
    "day_of_week": "isoweekday",
    "month_of_year": "month",
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def truncate(ts: datetime, granularity: Union[Granularity, str]) -> datetime:
    """
    Truncate *ts* to the start of its bucket using its wall-clock fields.

    Args:
        ts: Sample timestamp (naive or timezone-aware).
        granularity: ``hour``, ``day``, ``week`` (ISO, Monday start),
            ``month`` or ``year``.

    Returns:
        Naive datetime labelling the bucket.

    Raises:
        ValueError: Unknown granularity.
    """
    unit = Granularity(granularity)
    base = datetime(ts.year, ts.month, ts.day, ts.hour)

    if unit is Granularity.HOUR:
        return base
    day = base.replace(hour=0)
    if unit is Granularity.DAY:
        return day
    if unit is Granularity.WEEK:
        return day - timedelta(days=day.weekday())
    if unit is Granularity.MONTH:
        return day.replace(day=1)
    return day.replace(month=1, day=1)


def aggregate(
    samples: Iterable[CountSample],
    granularity: Union[Granularity, str] = Granularity.HOUR,
) -> List[Bucket]:
    """
    Sum samples per ``(bucket, group_key)``.

    Args:
        samples: ``(timestamp, group_key, value)`` triples.  Non-finite or
            non-numeric values count as 0.
        granularity: Bucket width.

    Returns:
        Buckets in chronological order.  Empty list for empty input.

    Raises:
        TypeError: If *samples* is ``None`` or a sample has no group key.
        ValueError: Unknown granularity.
    """
    df = _samples_frame(samples, granularity)
    if df.empty:
        return []

    sums = df.groupby(["label", "group_key"], sort=True)["value"].sum()

    buckets: List[Bucket] = []
    for label, group in sums.groupby(level="label", sort=True):
        values = {
            str(g): float(v)
            for g, v in zip(group.index.get_level_values("group_key"), group.values)
        }
        buckets.append(Bucket(label=pd.Timestamp(label).to_pydatetime(), values=values))
    return buckets


def buckets_to_frame(buckets: Iterable[Bucket]) -> pd.DataFrame:
    """
    Wide table of bucket sums: index ``label``, one column per group.

    Groups absent from a bucket read 0; buckets absent from the input are
    not added.
    """
    buckets = list(buckets)
    if not buckets:
        return pd.DataFrame(index=pd.DatetimeIndex([], name="label"))

    df = pd.DataFrame(
        [b.values for b in buckets],
        index=pd.DatetimeIndex([b.label for b in buckets], name="label"),
    )
    return df.fillna(0.0).reindex(columns=sorted(df.columns))


def volume_profile(samples: Iterable[CountSample], by: str = "hour_of_day") -> Dict[int, float]:
    """
    Total volume per recurring calendar slot.

    Args:
        samples: Count samples (all groups pooled).
        by: ``hour_of_day`` (0-23), ``day_of_week`` (ISO, 1=Monday ...
            7=Sunday) or ``month_of_year`` (1-12).

    Returns:
        ``{slot: total}`` ordered by slot; only slots present in the data.

    Raises:
        ValueError: Unknown profile.
    """
    if by not in _PROFILES:
        raise ValueError(
            f"Unknown profile '{by}'; expected one of {sorted(_PROFILES)}"
        )
    attr = _PROFILES[by]

    totals: Dict[int, float] = {}
    for ts, _, value in _clean(samples):
        slot = getattr(ts, attr)
        slot = slot() if callable(slot) else slot
        totals[slot] = totals.get(slot, 0.0) + value
    return dict(sorted(totals.items()))


def average_daily_volume(samples: Iterable[CountSample]) -> float:
    """Mean of per-calendar-day totals; 0.0 when there are no samples."""
    daily = aggregate(samples, Granularity.DAY)
    if not daily:
        return 0.0
    return float(np.mean([b.total for b in daily]))


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _clean(samples: Iterable[CountSample]) -> List[CountSample]:
    """Coerce values to finite floats (bad values become 0).

    Raises:
        TypeError: If *samples* is ``None`` or a sample has no group key.
    """
    if samples is None:
        raise TypeError("samples must be an iterable of CountSample, not None")
    cleaned: List[CountSample] = []
    for ts, group_key, value in samples:
        if group_key is None or (isinstance(group_key, float) and np.isnan(group_key)):
            raise TypeError(f"Sample at {ts} has no group key")
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = 0.0
        if not np.isfinite(number):
            number = 0.0
        cleaned.append(CountSample(ts, group_key, number))
    return cleaned


def _samples_frame(
    samples: Iterable[CountSample],
    granularity: Union[Granularity, str],
) -> pd.DataFrame:
    unit = Granularity(granularity)
    cleaned = _clean(samples)
    return pd.DataFrame(
        {
            "label": [truncate(s.timestamp, unit) for s in cleaned],
            "group_key": [s.group_key for s in cleaned],
            "value": [s.value for s in cleaned],
        },
        columns=["label", "group_key", "value"],
    )
