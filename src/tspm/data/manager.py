"""
Database Manager for TSPM (Imperative Shell)

Handles the per-location SQLite store: schema initialisation, event
insertion and range queries, and the single-row metadata table that holds
the location identifier and timezone.

Package Location: src/tspm/data/manager.py
"""

import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

_DEFAULT_METADATA: Dict[str, Any] = {"timezone": "UTC"}


class DatabaseManager:
    """Manages SQLite database operations for one location.

    Responsibilities:
        - Database initialisation with WAL mode and full schema.
        - Transaction management via context-manager protocol.
        - Event insertion and range queries.
        - Location metadata (identifier, name, timezone).
    """

    def __init__(self, db_path: Path):
        """Initialise with path to the SQLite database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self.conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> "DatabaseManager":
        self.conn = sqlite3.connect(self.db_path)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def _require_conn(self) -> sqlite3.Connection:
        if not self.conn:
            raise RuntimeError("No active connection.")
        return self.conn

    # ------------------------------------------------------------------
    # Schema initialisation
    # ------------------------------------------------------------------

    def init_db(self) -> None:
        """Initialise database schema and indices.

        Creates:
            1. ``events``   – raw controller events (UTC epoch timestamps)
            2. ``metadata`` – static location attributes (single row)
        """
        conn = self._require_conn()
        cur = conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL")

        cur.execute("""
            CREATE TABLE IF NOT EXISTS events (
                timestamp  REAL    NOT NULL,
                event_code INTEGER NOT NULL,
                parameter  INTEGER NOT NULL,
                UNIQUE(timestamp, event_code, parameter) ON CONFLICT IGNORE
            )
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_events_timestamp
            ON events (timestamp)
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_events_code_param
            ON events (event_code, parameter)
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS metadata (
                lock_id           INTEGER PRIMARY KEY CHECK (lock_id = 1),
                intersection_id   TEXT,
                intersection_name TEXT,
                timezone          TEXT
            )
        """)

        conn.commit()

    # ------------------------------------------------------------------
    # Event I/O
    # ------------------------------------------------------------------

    def insert_events(self, events: Iterable[Tuple[float, int, int]]) -> int:
        """Bulk-insert events, silently ignoring duplicates.

        Args:
            events: Iterable of ``(timestamp, event_code, parameter)``
                tuples with UTC epoch timestamps.

        Returns:
            Number of rows actually inserted.
        """
        conn = self._require_conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM events")
        before = cur.fetchone()[0]
        cur.executemany(
            "INSERT OR IGNORE INTO events (timestamp, event_code, parameter) "
            "VALUES (?, ?, ?)",
            list(events),
        )
        cur.execute("SELECT COUNT(*) FROM events")
        after = cur.fetchone()[0]
        conn.commit()
        return after - before

    def query_events(
        self,
        start_time: Optional[float] = None,
        end_time: Optional[float] = None,
        event_codes: Optional[List[int]] = None,
    ) -> pd.DataFrame:
        """Query events from the database with optional filters.

        Args:
            start_time:  Minimum timestamp (inclusive).  ``None`` = no lower bound.
            end_time:    Maximum timestamp (inclusive).  ``None`` = no upper bound.
            event_codes: List of event codes to include.  ``None`` = all codes.

        Returns:
            DataFrame with columns ``[timestamp, event_code, parameter]``.
        """
        conn = self._require_conn()

        clauses: List[str] = []
        params: list = []

        if start_time is not None:
            clauses.append("timestamp >= ?")
            params.append(start_time)
        if end_time is not None:
            clauses.append("timestamp <= ?")
            params.append(end_time)
        if event_codes:
            ph = ", ".join("?" for _ in event_codes)
            clauses.append(f"event_code IN ({ph})")
            params.extend(event_codes)

        where = " AND ".join(clauses) if clauses else "1=1"
        sql = (
            f"SELECT timestamp, event_code, parameter FROM events "
            f"WHERE {where} ORDER BY timestamp, event_code, parameter"
        )
        return pd.read_sql_query(sql, conn, params=params)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def set_metadata(
        self,
        intersection_id: Optional[str] = None,
        intersection_name: Optional[str] = None,
        timezone: str = "UTC",
    ) -> None:
        """Upsert location metadata (single-row table).

        Args:
            intersection_id:   Location identifier stamped on every event.
            intersection_name: Human-readable name.
            timezone:          IANA timezone string.
        """
        conn = self._require_conn()
        conn.cursor().execute("""
            INSERT OR REPLACE INTO metadata (
                lock_id, intersection_id, intersection_name, timezone
            ) VALUES (1, ?, ?, ?)
        """, (intersection_id, intersection_name, timezone))
        conn.commit()

    def get_metadata(self) -> Dict[str, Any]:
        """Return location metadata as a dict.

        Returns:
            Dict of metadata fields.  Returns ``{'timezone': 'UTC'}`` if the
            table does not yet exist or has no rows.
        """
        conn = self._require_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM metadata WHERE lock_id = 1")
        except sqlite3.OperationalError:
            return dict(_DEFAULT_METADATA)
        row = cur.fetchone()
        if not row:
            return dict(_DEFAULT_METADATA)
        return dict(zip([d[0] for d in cur.description], row))


def init_db(db_path: Path) -> None:
    """Convenience wrapper: create the schema at *db_path*."""
    with DatabaseManager(db_path) as manager:
        manager.init_db()
