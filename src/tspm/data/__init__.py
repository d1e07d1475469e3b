"""
TSPM Data Package (Imperative Shell)

This package handles all I/O for the TSPM system: the per-location SQLite
store and the engine that feeds it to the Functional Core.

Modules:
- manager:  Database initialization, event storage, metadata
- reader:   Window queries returning typed priority events
- priority: PriorityEngine orchestration (cycles, metrics, summary)
"""

from .manager import DatabaseManager, init_db
from .reader import load_priority_events, read_events_csv, resolve_location
from .priority import PriorityEngine

__all__ = [
    'DatabaseManager',
    'init_db',
    'load_priority_events',
    'read_events_csv',
    'resolve_location',
    'PriorityEngine',
]
