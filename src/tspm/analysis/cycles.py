"""
Priority Request Cycle Reconstruction (Functional Core)

Pure functions only. No I/O, no SQL, no side effects.
Input is a list of ``Event`` objects; output is a list of immutable
``Cycle`` records (and optionally a DataFrame view of them).

Package Location: src/tspm/analysis/cycles.py

Cycle Rule:
    A cycle is one priority request for one ``(location, tsp_number)`` key,
    opened by a check-in (112) and closed by a check-out (115).  Each key
    holds at most one open cycle at a time:

        NoCycle --112--> Open --115--------------> Closed
                         Open --112 (same key)---> Closed (forced_closed)
                         Open --end of stream----> Closed (incomplete,
                                                   check_out = report_end)

    Events are sorted first, with same-timestamp ties broken by a fixed
    per-code priority (see ``events.tie_priority``) so the result does not
    depend on input order.

Inner Interval Rule:
    Service start (118) / service end (119) are first-occurrence-wins.
    At finalization a start without an end runs to check-out; an end without
    a start means no inner interval.  A 119 landing just after the 115 that
    closed its cycle (within ``service_end_grace_sec``) still belongs to
    that cycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

import pandas as pd

from .events import MARKER_KINDS, Event, EventCode

log = logging.getLogger(__name__)

DEFAULT_SERVICE_END_GRACE_SEC: float = 1.0

_CYCLE_COLUMNS: List[str] = [
    "location", "tsp_number", "check_in", "check_out",
    "service_start", "service_end", "forced_closed", "incomplete",
    "marker_count",
]


class InvertedInterval(ValueError):
    """Raised when a finalized cycle would end before it starts."""


class Marker(NamedTuple):
    kind: str
    timestamp: datetime


class MarkerOffset(NamedTuple):
    kind: str
    seconds: float


@dataclass(frozen=True)
class Cycle:
    """One reconstructed priority request.

    ``service_start`` / ``service_end`` are either both set (the resolved
    inner interval) or both ``None``.
    """

    location: str
    tsp_number: int
    check_in: datetime
    check_out: datetime
    service_start: Optional[datetime] = None
    service_end: Optional[datetime] = None
    markers: Tuple[Marker, ...] = ()
    forced_closed: bool = False
    incomplete: bool = False

    @property
    def key(self) -> Tuple[str, int]:
        return (self.location, self.tsp_number)

    @property
    def has_service(self) -> bool:
        return self.service_start is not None and self.service_end is not None

    @property
    def marker_offsets(self) -> List[MarkerOffset]:
        """Markers as seconds since check-in, limited to the request window."""
        request = (self.check_out - self.check_in).total_seconds()
        offsets: List[MarkerOffset] = []
        for kind, ts in self.markers:
            seconds = (ts - self.check_in).total_seconds()
            if 0 <= seconds <= request:
                offsets.append(MarkerOffset(kind, seconds))
        return offsets


@dataclass
class _OpenCycle:
    """Mutable builder for the single open cycle of one key."""

    location: str
    tsp_number: int
    check_in: datetime
    service_start: Optional[datetime] = None
    service_end: Optional[datetime] = None
    markers: List[Marker] = field(default_factory=list)

    def apply(self, event: Event) -> None:
        if event.code == EventCode.SERVICE_START:
            if self.service_start is None:
                self.service_start = event.timestamp
        elif event.code == EventCode.SERVICE_END:
            if self.service_end is None:
                self.service_end = event.timestamp
        elif event.code in MARKER_KINDS:
            self.markers.append(Marker(MARKER_KINDS[event.code], event.timestamp))

    def finalize(
        self,
        check_out: datetime,
        forced_closed: bool = False,
        incomplete: bool = False,
    ) -> Cycle:
        """Freeze into a ``Cycle``, resolving the inner interval.

        Raises:
            InvertedInterval: If ``check_out`` precedes ``check_in``.
        """
        if check_out < self.check_in:
            raise InvertedInterval(
                f"check_out {check_out} precedes check_in {self.check_in} "
                f"for {self.location}:{self.tsp_number}"
            )

        service_start = self.service_start
        service_end = self.service_end
        if service_start is None:
            service_end = None
        elif service_end is None or service_end < service_start:
            service_end = check_out

        return Cycle(
            location=self.location,
            tsp_number=self.tsp_number,
            check_in=self.check_in,
            check_out=check_out,
            service_start=service_start,
            service_end=service_end,
            markers=tuple(self.markers),
            forced_closed=forced_closed,
            incomplete=incomplete,
        )


class _Closed(NamedTuple):
    builder: _OpenCycle
    check_out: datetime
    forced_closed: bool
    incomplete: bool


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def reconstruct(
    events: Iterable[Event],
    report_start: datetime,
    report_end: datetime,
    service_end_grace_sec: float = DEFAULT_SERVICE_END_GRACE_SEC,
) -> List[Cycle]:
    """
    Roll a priority event stream into bounded request cycles.

    Args:
        events: Events for one or more locations, in any order.  Codes
            outside the vocabulary are skipped.
        report_start: Inclusive start of the report window.
        report_end: Inclusive end of the report window; still-open cycles
            are closed here and flagged ``incomplete``.
        service_end_grace_sec: How long after a check-out a trailing
            service-end event for the same key may still attach to the
            closed cycle.  ``0`` only accepts the same instant.

    Returns:
        Cycles intersecting ``[report_start, report_end]``, sorted by
        ``(check_in, location, tsp_number)``.  Cycles that would end before
        they start are dropped.

    Raises:
        TypeError: If *events* is ``None``.
        ValueError: If ``report_end`` precedes ``report_start``.
    """
    if events is None:
        raise TypeError("events must be an iterable of Event, not None")
    if report_end < report_start:
        raise ValueError(
            f"report_end {report_end} precedes report_start {report_start}"
        )

    ordered = sorted(events, key=Event.sort_key)

    open_cycles: Dict[Tuple[str, int], _OpenCycle] = {}
    # Most recent check-out close per key, eligible for a trailing 119.
    recently_closed: Dict[Tuple[str, int], _Closed] = {}
    closed: List[_Closed] = []
    skipped = 0

    for event in ordered:
        key = event.key
        current = open_cycles.get(key)

        if event.code == EventCode.CHECK_IN:
            if current is not None:
                closed.append(_Closed(current, event.timestamp, True, False))
            open_cycles[key] = _OpenCycle(
                location=event.location,
                tsp_number=event.tsp_number,
                check_in=event.timestamp,
            )
            recently_closed.pop(key, None)
            continue

        if current is None:
            if event.code == EventCode.SERVICE_END:
                _attach_trailing_service_end(
                    recently_closed, key, event.timestamp, service_end_grace_sec
                )
            else:
                skipped += 1
            continue

        if event.code == EventCode.CHECK_OUT:
            entry = _Closed(current, event.timestamp, False, False)
            closed.append(entry)
            recently_closed[key] = entry
            del open_cycles[key]
        elif event.code in (EventCode.SERVICE_START, EventCode.SERVICE_END) \
                or event.code in MARKER_KINDS:
            current.apply(event)
        else:
            skipped += 1

    for builder in open_cycles.values():
        closed.append(_Closed(builder, report_end, False, True))

    cycles: List[Cycle] = []
    for entry in closed:
        try:
            cycle = entry.builder.finalize(
                entry.check_out,
                forced_closed=entry.forced_closed,
                incomplete=entry.incomplete,
            )
        except InvertedInterval as exc:
            log.debug(
                f"Dropping inverted cycle: {exc}",
                extra={
                    "location": entry.builder.location,
                    "tsp_number": entry.builder.tsp_number,
                },
            )
            continue
        if cycle.check_out < report_start or cycle.check_in > report_end:
            continue
        cycles.append(cycle)

    cycles.sort(key=lambda c: (c.check_in, c.location, c.tsp_number))

    log.debug(
        f"Reconstructed {len(cycles)} cycles from {len(ordered)} events",
        extra={
            "events": len(ordered),
            "cycles": len(cycles),
            "skipped_events": skipped,
        },
    )
    return cycles


def cycles_to_frame(cycles: Iterable[Cycle]) -> pd.DataFrame:
    """
    Flatten cycles into a DataFrame, one row per cycle.

    Args:
        cycles: Output of :func:`reconstruct`.

    Returns:
        DataFrame with columns
        ``[location, tsp_number, check_in, check_out, service_start,
        service_end, forced_closed, incomplete, marker_count]``.
        Empty (same schema) when there are no cycles.
    """
    rows = [
        {
            "location": c.location,
            "tsp_number": c.tsp_number,
            "check_in": c.check_in,
            "check_out": c.check_out,
            "service_start": c.service_start,
            "service_end": c.service_end,
            "forced_closed": c.forced_closed,
            "incomplete": c.incomplete,
            "marker_count": len(c.markers),
        }
        for c in cycles
    ]
    if not rows:
        return pd.DataFrame(columns=_CYCLE_COLUMNS)
    return pd.DataFrame(rows, columns=_CYCLE_COLUMNS)


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _attach_trailing_service_end(
    recently_closed: Dict[Tuple[str, int], _Closed],
    key: Tuple[str, int],
    ts: datetime,
    grace_sec: float,
) -> None:
    """Give a just-closed cycle the service end that arrived after its 115."""
    entry = recently_closed.get(key)
    if entry is None:
        return
    if (ts - entry.check_out).total_seconds() > grace_sec:
        del recently_closed[key]
        return
    if entry.builder.service_end is None:
        entry.builder.service_end = ts
