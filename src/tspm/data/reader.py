"""
Priority Event Reader (Imperative Shell)

Reads priority events for a report window out of the per-location SQLite
store and hands them to the Functional Core as typed ``Event`` objects in the
location's timezone.

Package Location: src/tspm/data/reader.py

Lookback:
    A request that checked in before the report window but checks out
    inside it still belongs to the report.  Events are therefore fetched
    from ``start - lookback_hours``; the reconstructor's window filter
    discards cycles that ended before ``start``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple, Union

import pandas as pd

from .manager import DatabaseManager
from ..analysis.events import PRIORITY_CODES, Event, events_from_frame
from ..utils.timezone import localize, resolve_pytz

log = logging.getLogger(__name__)

DEFAULT_LOOKBACK_HOURS: float = 12.0

_EPOCH = pd.Timestamp("1970-01-01", tz="UTC")


def load_priority_events(
    db_path: Path,
    start: Union[str, datetime],
    end: Union[str, datetime],
    timezone: Optional[str] = None,
    location: Optional[str] = None,
    lookback_hours: float = DEFAULT_LOOKBACK_HOURS,
) -> List[Event]:
    """
    Load priority events (codes 112-130) for a report window.

    Args:
        db_path: Path to the location's SQLite database.
        start: Window start (local time when naive).
        end: Window end, inclusive (local time when naive).
        timezone: IANA timezone; defaults to the metadata table value.
        location: Location identifier; defaults to the metadata
            ``intersection_id``, then the database file stem.
        lookback_hours: Extra history fetched before *start*.

    Returns:
        Events expressed in the location timezone, sorted by timestamp.
    """
    tz_name, loc = resolve_location(db_path, timezone, location)
    tz = resolve_pytz(tz_name)
    start_dt = localize(start, tz)
    end_dt = localize(end, tz)

    fetch_from = start_dt - timedelta(hours=lookback_hours)
    with DatabaseManager(db_path) as manager:
        df = manager.query_events(
            start_time=fetch_from.timestamp(),
            end_time=end_dt.timestamp(),
            event_codes=PRIORITY_CODES,
        )

    log.debug(
        f"Loaded {len(df)} priority events for {loc}",
        extra={"location": loc, "rows": len(df), "db_path": str(db_path)},
    )
    return events_from_frame(df, location=loc, tz=tz)


def resolve_location(
    db_path: Path,
    timezone: Optional[str] = None,
    location: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Fill in timezone and location identifier from the metadata table.

    Explicit arguments win over metadata; a missing timezone falls back to
    ``'UTC'`` and a missing identifier to the database file stem.

    Returns:
        ``(timezone_name, location_identifier)``.
    """
    meta = {}
    if timezone is None or location is None:
        with DatabaseManager(db_path) as manager:
            meta = manager.get_metadata()
    tz_name = timezone or meta.get("timezone") or "UTC"
    loc = location or meta.get("intersection_id") or Path(db_path).stem
    return tz_name, str(loc)


def read_events_csv(csv_path: Path) -> List[Tuple[float, int, int]]:
    """
    Read a ``timestamp,event_code,parameter`` CSV into insertable tuples.

    ``timestamp`` may be a UTC epoch float or an ISO string with an offset;
    rows whose timestamp cannot be parsed are dropped with a warning.

    Args:
        csv_path: Path to the CSV file.

    Returns:
        List of ``(epoch, event_code, parameter)`` tuples.

    Raises:
        FileNotFoundError: If *csv_path* does not exist.
        ValueError: If a required column is missing.
    """
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Event file not found: {csv_path}")

    df = pd.read_csv(csv_path)
    missing = {"timestamp", "event_code", "parameter"} - set(df.columns)
    if missing:
        raise ValueError(f"Missing columns in {csv_path.name}: {sorted(missing)}")

    epoch = pd.to_numeric(df["timestamp"], errors="coerce")
    text = df.loc[epoch.isna(), "timestamp"].dropna().astype(str)
    if not text.empty:
        parsed = pd.to_datetime(text, utc=True, errors="coerce", format="ISO8601")
        epoch.loc[text.index] = (parsed - _EPOCH).dt.total_seconds()

    codes = pd.to_numeric(df["event_code"], errors="coerce")
    params = pd.to_numeric(df["parameter"], errors="coerce")
    valid = epoch.notna() & codes.notna() & params.notna()
    if (~valid).any():
        log.warning(
            f"Dropping {int((~valid).sum())} unparseable rows from {csv_path.name}",
            extra={"dropped": int((~valid).sum()), "csv": str(csv_path)},
        )

    return list(zip(
        epoch[valid].astype(float).tolist(),
        codes[valid].astype(int).tolist(),
        params[valid].astype(int).tolist(),
    ))
