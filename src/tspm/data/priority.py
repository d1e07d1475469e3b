"""
Priority Engine (Imperative Shell)

Orchestrates the Priority Summary / Priority Details measures for one
location: loads events from SQLite, resolves the timezone and location
identifier, and delegates all computation to the Functional Core
(``analysis/cycles.py`` and ``analysis/metrics.py``).

Package Location: src/tspm/data/priority.py
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple, Union

import pandas as pd

from .reader import DEFAULT_LOOKBACK_HOURS, load_priority_events, resolve_location
from ..analysis.cycles import DEFAULT_SERVICE_END_GRACE_SEC, Cycle, reconstruct
from ..analysis.events import Event
from ..analysis.metrics import (
    DerivedMetrics,
    PrioritySummary,
    derive,
    marker_frame,
    metrics_frame,
    summarize_priority,
)
from ..utils.timezone import localize, resolve_pytz

log = logging.getLogger(__name__)

DateLike = Union[str, datetime]


class PriorityEngine:
    """
    Queries a location database and produces priority request cycles.

    All naive date/time arguments are interpreted in the location's local
    timezone (read from the ``metadata`` table unless given).

    Example::

        engine = PriorityEngine(Path("7115_data.db"))
        summary = engine.summary("2025-06-02 06:00", "2025-06-02 09:00")
        bars = engine.metrics_frame("2025-06-02", "2025-06-03")
    """

    def __init__(
        self,
        db_path: Path,
        timezone: Optional[str] = None,
        location: Optional[str] = None,
        lookback_hours: float = DEFAULT_LOOKBACK_HOURS,
        service_end_grace_sec: float = DEFAULT_SERVICE_END_GRACE_SEC,
    ) -> None:
        """
        Args:
            db_path: Path to the location's SQLite database.
            timezone: IANA timezone override.
            location: Location identifier override.
            lookback_hours: History fetched before each window start so
                requests that began earlier are reconstructed.
            service_end_grace_sec: Passed to
                :func:`~tspm.analysis.cycles.reconstruct`.

        Raises:
            FileNotFoundError: If *db_path* does not exist.
        """
        self.db_path = Path(db_path)
        if not self.db_path.exists():
            raise FileNotFoundError(f"Database not found: {self.db_path}")
        self.timezone, self.location = resolve_location(self.db_path, timezone, location)
        self.lookback_hours = lookback_hours
        self.service_end_grace_sec = service_end_grace_sec

    # ------------------------------------------------------------------
    # Public methods
    # ------------------------------------------------------------------

    def cycles(self, start: DateLike, end: DateLike) -> List[Cycle]:
        """Reconstruct request cycles intersecting ``[start, end]``."""
        _, cycles = self._run(start, end)
        return cycles

    def metrics(self, start: DateLike, end: DateLike) -> List[DerivedMetrics]:
        """Derived timing metrics, one per cycle."""
        return [derive(c) for c in self.cycles(start, end)]

    def metrics_frame(self, start: DateLike, end: DateLike) -> pd.DataFrame:
        """Request/service bar series as a DataFrame."""
        return metrics_frame(self.cycles(start, end))

    def marker_frame(self, start: DateLike, end: DateLike) -> pd.DataFrame:
        """Marker icon series (early green, extend green, force offs)."""
        return marker_frame(self.cycles(start, end))

    def summary(self, start: DateLike, end: DateLike) -> PrioritySummary:
        """Window roll-up: event counts, cycle counts, average duration."""
        start_dt, end_dt = self._window(start, end)
        events, cycles = self._run(start_dt, end_dt)
        return summarize_priority(events, cycles, self.location, start_dt, end_dt)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _window(self, start: DateLike, end: DateLike) -> Tuple[datetime, datetime]:
        tz = resolve_pytz(self.timezone)
        return localize(start, tz), localize(end, tz)

    def _run(self, start: DateLike, end: DateLike) -> Tuple[List[Event], List[Cycle]]:
        start_dt, end_dt = self._window(start, end)
        events = load_priority_events(
            self.db_path,
            start_dt,
            end_dt,
            timezone=self.timezone,
            location=self.location,
            lookback_hours=self.lookback_hours,
        )
        cycles = reconstruct(
            events,
            start_dt,
            end_dt,
            service_end_grace_sec=self.service_end_grace_sec,
        )
        log.info(
            f"{self.location}: {len(cycles)} priority cycles "
            f"between {start_dt.isoformat()} and {end_dt.isoformat()}",
            extra={"location": self.location, "cycles": len(cycles)},
        )
        return events, cycles
