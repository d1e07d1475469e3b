"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta

import pytest

from tspm.analysis.events import Event
from tspm.data.manager import DatabaseManager

BASE = datetime(2025, 6, 2, 7, 0, 0)


@pytest.fixture
def base_time():
    """Naive reference instant (07:00 local) used as t=0."""
    return BASE


@pytest.fixture
def make_event():
    """Factory: ``make_event(code, seconds, tsp_number=1, location="A")``."""

    def _make(code, seconds, tsp_number=1, location="A"):
        return Event(
            code=code,
            tsp_number=tsp_number,
            timestamp=BASE + timedelta(seconds=seconds),
            location=location,
        )

    return _make


@pytest.fixture
def at():
    """Convert a second offset from the reference instant into a datetime."""

    def _at(seconds):
        return BASE + timedelta(seconds=seconds)

    return _at


@pytest.fixture
def location_db(tmp_path):
    """Initialised location database (UTC timezone, id ``7115``)."""
    db_path = tmp_path / "7115_data.db"
    with DatabaseManager(db_path) as manager:
        manager.init_db()
        manager.set_metadata(
            intersection_id="7115",
            intersection_name="Main St & 1st Ave",
            timezone="UTC",
        )
    return db_path
