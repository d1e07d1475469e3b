"""
Priority Event Model (Functional Core)

Pure functions only. No I/O, no SQL, no side effects.

Converts raw controller records into typed, validated ``Event`` objects once,
at the boundary, so the reconstruction code never re-coerces values.

Package Location: src/tspm/analysis/events.py

Event Vocabulary (Indiana hi-res, transit signal priority):
    112  TSP check-in          (opens a request cycle)
    113  TSP early green       (marker)
    114  TSP extend green      (marker)
    115  TSP check-out         (closes a request cycle)
    116  Preempt force off     (marker)
    117  TSP early force off   (marker)
    118  TSP service start     (inner interval start)
    119  TSP service end       (inner interval end)

Codes 120-130 are fetched from storage with the rest of the priority range
but carry no meaning for cycle reconstruction and are skipped there.
"""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
from pytz import BaseTzInfo

log = logging.getLogger(__name__)


class InvalidEvent(ValueError):
    """Raised when a raw record cannot be converted into an ``Event``."""


class EventCode(IntEnum):
    CHECK_IN = 112
    EARLY_GREEN = 113
    EXTEND_GREEN = 114
    CHECK_OUT = 115
    PREEMPT_FORCE_OFF = 116
    TSP_EARLY_FORCE_OFF = 117
    SERVICE_START = 118
    SERVICE_END = 119


# Full priority range requested from storage (matches the report query).
PRIORITY_CODES: List[int] = list(range(112, 131))

MARKER_KINDS: Dict[int, str] = {
    EventCode.EARLY_GREEN: "early_green",
    EventCode.EXTEND_GREEN: "extend_green",
    EventCode.PREEMPT_FORCE_OFF: "preempt_force_off",
    EventCode.TSP_EARLY_FORCE_OFF: "tsp_early_force_off",
}

# Processing order for events sharing a timestamp: open, then markers and
# service start, then close, then service end.
_TIE_PRIORITY: Dict[int, int] = {
    EventCode.CHECK_IN: 0,
    EventCode.EARLY_GREEN: 1,
    EventCode.EXTEND_GREEN: 1,
    EventCode.PREEMPT_FORCE_OFF: 1,
    EventCode.TSP_EARLY_FORCE_OFF: 1,
    EventCode.SERVICE_START: 1,
    EventCode.CHECK_OUT: 2,
    EventCode.SERVICE_END: 3,
}
_UNKNOWN_PRIORITY: int = 4

# Accepted spellings for raw record fields (storage schema first, then the
# upstream API's camelCase names).
_TIMESTAMP_FIELDS: Tuple[str, ...] = ("timestamp", "timeStamp")
_CODE_FIELDS: Tuple[str, ...] = ("event_code", "eventCode", "code")
_PARAM_FIELDS: Tuple[str, ...] = ("parameter", "eventParam", "tsp_number")
_LOCATION_FIELDS: Tuple[str, ...] = ("location", "locationIdentifier")


def tie_priority(code: int) -> int:
    """Return the same-timestamp processing rank for *code*."""
    return _TIE_PRIORITY.get(code, _UNKNOWN_PRIORITY)


@dataclass(frozen=True)
class Event:
    """A single coded priority event for one location.

    Attributes:
        code: Controller event code (see module docstring).
        tsp_number: Request number (controller event parameter).
        timestamp: Event time. Either all naive or all timezone-aware
            within one reconstruction call.
        location: Location (intersection) identifier.
    """

    code: int
    tsp_number: int
    timestamp: datetime
    location: str

    @property
    def key(self) -> Tuple[str, int]:
        """Composite ``(location, tsp_number)`` key; one open cycle per key."""
        return (self.location, self.tsp_number)

    def sort_key(self) -> Tuple[datetime, int, int, str, int]:
        return (
            self.timestamp,
            tie_priority(self.code),
            self.code,
            self.location,
            self.tsp_number,
        )

    def __lt__(self, other: "Event") -> bool:
        if not isinstance(other, Event):
            return NotImplemented
        return self.sort_key() < other.sort_key()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_event(
    raw: Mapping[str, Any],
    location: Optional[str] = None,
    tz: Optional[BaseTzInfo] = None,
) -> Event:
    """
    Convert one raw record into a validated ``Event``.

    Args:
        raw: Mapping with a timestamp, event code and parameter.  Field
            names may follow the storage schema (``timestamp``,
            ``event_code``, ``parameter``) or the upstream API
            (``timestamp``, ``eventCode``, ``eventParam``,
            ``locationIdentifier``).
        location: Location identifier used when the record carries none.
        tz: pytz timezone used to localize naive timestamps.  Numeric
            timestamps are UTC epoch seconds and are converted into *tz*
            when given.

    Returns:
        Event.

    Raises:
        InvalidEvent: Timestamp unparseable, code/parameter not integral,
            or no location available.
    """
    ts = _parse_timestamp(_first(raw, _TIMESTAMP_FIELDS), tz)
    code = _parse_int(_first(raw, _CODE_FIELDS), "event code")
    tsp_number = _parse_int(_first(raw, _PARAM_FIELDS), "parameter")

    loc = _first(raw, _LOCATION_FIELDS)
    if loc is None or (isinstance(loc, float) and math.isnan(loc)):
        loc = location
    if loc is None:
        raise InvalidEvent("Event has no location identifier")

    return Event(code=code, tsp_number=tsp_number, timestamp=ts, location=str(loc))


def parse_events(
    records: Iterable[Mapping[str, Any]],
    location: Optional[str] = None,
    tz: Optional[BaseTzInfo] = None,
) -> List[Event]:
    """
    Convert raw records into events, dropping (and logging) invalid ones.

    A record whose timestamp is naive in a batch of offset-aware ones (or
    the reverse) is invalid; the first valid record fixes the kind.

    Args:
        records: Iterable of raw record mappings.
        location: Fallback location identifier.
        tz: Timezone for naive or epoch timestamps.

    Returns:
        List of valid events in input order.

    Raises:
        TypeError: If *records* is ``None``.
    """
    if records is None:
        raise TypeError("records must be an iterable of mappings, not None")

    events: List[Event] = []
    dropped = 0
    aware: Optional[bool] = None
    for idx, raw in enumerate(records):
        try:
            event = parse_event(raw, location=location, tz=tz)
            is_aware = event.timestamp.tzinfo is not None
            if aware is None:
                aware = is_aware
            elif is_aware != aware:
                raise InvalidEvent(
                    f"Timestamp {event.timestamp.isoformat()} is "
                    f"{'offset-aware' if is_aware else 'naive'}, unlike "
                    f"earlier records in this batch"
                )
            events.append(event)
        except InvalidEvent as exc:
            dropped += 1
            log.warning(
                f"Dropping invalid event record #{idx}: {exc}",
                extra={"record_index": idx, "reason": str(exc)},
            )

    if dropped:
        log.info(
            f"Parsed {len(events)} events ({dropped} invalid records dropped)",
            extra={"parsed": len(events), "dropped": dropped},
        )
    return events


def events_from_frame(
    events_df: pd.DataFrame,
    location: str,
    tz: Optional[BaseTzInfo] = None,
) -> List[Event]:
    """
    Convert a storage-schema DataFrame into events.

    Args:
        events_df: DataFrame with columns
            ``[timestamp, event_code, parameter]``; ``timestamp`` is a UTC
            epoch float as stored in the ``events`` table.
        location: Location identifier stamped on every event.
        tz: Location timezone.  Timestamps are expressed in this zone so
            that wall-clock fields match the intersection's local time.

    Returns:
        List of events (invalid rows dropped and logged).
    """
    if events_df.empty:
        return []
    return parse_events(
        events_df[["timestamp", "event_code", "parameter"]].to_dict("records"),
        location=location,
        tz=tz,
    )


def count_codes(
    events: Iterable[Event],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Dict[int, int]:
    """
    Count events per vocabulary code inside an optional inclusive window.

    Args:
        events: Events to count.
        start: Inclusive lower bound, or ``None``.
        end: Inclusive upper bound, or ``None``.

    Returns:
        Dict keyed by every ``EventCode`` value (zero when absent).
    """
    counts: Dict[int, int] = {int(code): 0 for code in EventCode}
    for e in events:
        if e.code not in counts:
            continue
        if start is not None and e.timestamp < start:
            continue
        if end is not None and e.timestamp > end:
            continue
        counts[e.code] += 1
    return counts


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _first(raw: Mapping[str, Any], names: Tuple[str, ...]) -> Any:
    for name in names:
        if name in raw:
            return raw[name]
    return None


def _parse_int(value: Any, label: str) -> int:
    if value is None or isinstance(value, bool):
        raise InvalidEvent(f"Missing or non-integer {label}: {value!r}")
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        raise InvalidEvent(f"Non-numeric {label}: {value!r}")
    if not math.isfinite(as_float) or as_float != int(as_float):
        raise InvalidEvent(f"Non-integer {label}: {value!r}")
    return int(as_float)


def _parse_timestamp(value: Any, tz: Optional[BaseTzInfo]) -> datetime:
    """Parse a datetime, ISO string or UTC epoch float into a ``datetime``."""
    if value is None or isinstance(value, bool):
        raise InvalidEvent(f"Missing timestamp: {value!r}")

    try:
        if isinstance(value, numbers.Real):
            if not math.isfinite(value):
                raise InvalidEvent(f"Non-finite timestamp: {value!r}")
            ts = pd.Timestamp(value, unit="s", tz="UTC")
            if tz is not None:
                ts = ts.tz_convert(tz)
        else:
            ts = pd.Timestamp(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidEvent(f"Unparseable timestamp {value!r}: {exc}")

    if ts is pd.NaT or pd.isna(ts):
        raise InvalidEvent(f"Unparseable timestamp: {value!r}")

    dt = ts.to_pydatetime()
    if dt.tzinfo is None and tz is not None:
        dt = tz.localize(dt)
    return dt
