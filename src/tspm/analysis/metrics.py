"""
Priority Cycle Metrics (Functional Core)

Pure functions only. No I/O, no SQL, no side effects.

Derives segment durations and marker offsets (seconds since check-in) from
reconstructed cycles, and rolls a report window up into the Priority
Summary counts.

Package Location: src/tspm/analysis/metrics.py

Null Rule:
    A cycle without a resolved inner interval reports
    ``request_no_service_sec`` and leaves ``time_to_service_sec``,
    ``service_duration_sec`` and ``tail_sec`` as ``None``.  A "no-service"
    request is distinct from a serviced request of zero length; every
    duration is either a finite non-negative float or ``None``, never NaN.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from .cycles import Cycle, MarkerOffset
from .events import Event, EventCode, count_codes

_METRIC_COLUMNS: List[str] = [
    "location", "tsp_number", "check_in", "check_out",
    "request_duration_sec", "time_to_service_sec", "service_duration_sec",
    "tail_sec", "request_no_service_sec", "service_end_offset_sec",
    "forced_closed", "incomplete",
]

_NULLABLE_COLUMNS: List[str] = [
    "time_to_service_sec", "service_duration_sec", "tail_sec",
    "request_no_service_sec", "service_end_offset_sec",
]

_MARKER_COLUMNS: List[str] = [
    "location", "tsp_number", "check_in", "kind", "offset_sec",
]


@dataclass(frozen=True)
class DerivedMetrics:
    """Timing breakdown of a single cycle, in seconds."""

    location: str
    tsp_number: int
    check_in: datetime
    request_duration_sec: float
    time_to_service_sec: Optional[float] = None
    service_duration_sec: Optional[float] = None
    tail_sec: Optional[float] = None
    request_no_service_sec: Optional[float] = None
    marker_offsets: List[MarkerOffset] = field(default_factory=list)

    @property
    def service_end_offset_sec(self) -> Optional[float]:
        """Top of the service bar, measured from check-in."""
        if self.time_to_service_sec is None or self.service_duration_sec is None:
            return None
        return self.time_to_service_sec + self.service_duration_sec


@dataclass(frozen=True)
class PrioritySummary:
    """Window-level roll-up of priority activity for one location."""

    location: str
    start: datetime
    end: datetime
    check_ins: int
    check_outs: int
    early_greens: int
    extended_greens: int
    cycles: int
    forced_closed: int
    incomplete: int
    average_duration_sec: float


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def derive(cycle: Cycle) -> DerivedMetrics:
    """
    Compute durations and marker offsets for one cycle.

    Args:
        cycle: A finalized cycle (``check_out >= check_in``).

    Returns:
        DerivedMetrics.  Marker offsets before check-in or after check-out
        are dropped.
    """
    request = _seconds(cycle.check_in, cycle.check_out)

    offsets = cycle.marker_offsets

    if not cycle.has_service:
        return DerivedMetrics(
            location=cycle.location,
            tsp_number=cycle.tsp_number,
            check_in=cycle.check_in,
            request_duration_sec=request,
            request_no_service_sec=request,
            marker_offsets=offsets,
        )

    return DerivedMetrics(
        location=cycle.location,
        tsp_number=cycle.tsp_number,
        check_in=cycle.check_in,
        request_duration_sec=request,
        time_to_service_sec=_seconds(cycle.check_in, cycle.service_start),
        service_duration_sec=_seconds(cycle.service_start, cycle.service_end),
        tail_sec=_seconds(cycle.service_end, cycle.check_out),
        marker_offsets=offsets,
    )


def metrics_frame(cycles: Iterable[Cycle]) -> pd.DataFrame:
    """
    Build the request/service bar series for a set of cycles.

    Args:
        cycles: Reconstructed cycles.

    Returns:
        DataFrame with one row per cycle and columns
        ``[location, tsp_number, check_in, check_out, request_duration_sec,
        time_to_service_sec, service_duration_sec, tail_sec,
        request_no_service_sec, service_end_offset_sec, forced_closed,
        incomplete]``.  Absent durations are ``None`` (object columns are
        kept so absence is not silently turned into NaN arithmetic).
    """
    rows = []
    for c in cycles:
        m = derive(c)
        rows.append({
            "location": c.location,
            "tsp_number": c.tsp_number,
            "check_in": c.check_in,
            "check_out": c.check_out,
            "request_duration_sec": m.request_duration_sec,
            "time_to_service_sec": m.time_to_service_sec,
            "service_duration_sec": m.service_duration_sec,
            "tail_sec": m.tail_sec,
            "request_no_service_sec": m.request_no_service_sec,
            "service_end_offset_sec": m.service_end_offset_sec,
            "forced_closed": c.forced_closed,
            "incomplete": c.incomplete,
        })
    if not rows:
        return pd.DataFrame(columns=_METRIC_COLUMNS)
    df = pd.DataFrame(rows, columns=_METRIC_COLUMNS)
    for col in _NULLABLE_COLUMNS:
        df[col] = pd.Series([r[col] for r in rows], index=df.index, dtype=object)
    return df


def marker_frame(cycles: Iterable[Cycle]) -> pd.DataFrame:
    """
    Long-format marker offsets (one row per marker inside its cycle).

    Args:
        cycles: Reconstructed cycles.

    Returns:
        DataFrame with columns ``[location, tsp_number, check_in, kind,
        offset_sec]``.
    """
    rows = [
        {
            "location": c.location,
            "tsp_number": c.tsp_number,
            "check_in": c.check_in,
            "kind": offset.kind,
            "offset_sec": offset.seconds,
        }
        for c in cycles
        for offset in derive(c).marker_offsets
    ]
    if not rows:
        return pd.DataFrame(columns=_MARKER_COLUMNS)
    return pd.DataFrame(rows, columns=_MARKER_COLUMNS)


def summarize_priority(
    events: Sequence[Event],
    cycles: Sequence[Cycle],
    location: str,
    report_start: datetime,
    report_end: datetime,
) -> PrioritySummary:
    """
    Roll up priority activity for a report window.

    Event counts cover events inside ``[report_start, report_end]``.  The
    average duration is taken over requests that ended with a real
    check-out (neither forced closed nor incomplete).

    Args:
        events: Events used for reconstruction.
        cycles: Output of :func:`~tspm.analysis.cycles.reconstruct`.
        location: Location identifier echoed in the summary.
        report_start: Window start.
        report_end: Window end.

    Returns:
        PrioritySummary (zeroed counts and ``average_duration_sec == 0.0``
        for an empty window).
    """
    counts = count_codes(
        (e for e in events if e.location == location),
        start=report_start,
        end=report_end,
    )
    own = [c for c in cycles if c.location == location]
    completed = [
        _seconds(c.check_in, c.check_out)
        for c in own
        if not c.forced_closed and not c.incomplete
    ]
    average = sum(completed) / len(completed) if completed else 0.0

    return PrioritySummary(
        location=location,
        start=report_start,
        end=report_end,
        check_ins=counts[EventCode.CHECK_IN],
        check_outs=counts[EventCode.CHECK_OUT],
        early_greens=counts[EventCode.EARLY_GREEN],
        extended_greens=counts[EventCode.EXTEND_GREEN],
        cycles=len(own),
        forced_closed=sum(1 for c in own if c.forced_closed),
        incomplete=sum(1 for c in own if c.incomplete),
        average_duration_sec=average,
    )


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _seconds(start: datetime, end: datetime) -> float:
    """Elapsed seconds from *start* to *end*, floored at zero."""
    delta = (end - start).total_seconds()
    return delta if delta > 0 else 0.0
