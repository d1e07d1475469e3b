"""
TSPM Command-Line Interface

Exposes four subcommands:

    tspm init    --db <path> [--location ID] [--timezone TZ]   Create a location database
    tspm load    --db <path> --csv <file>                      Import controller events
    tspm cycles  --db <path> --start <dt> --end <dt>           Per-cycle timing (JSON lines)
    tspm summary --db <path> --start <dt> --end <dt>           Window roll-up (JSON)

The package must be installed (``pip install -e .``) for the ``tspm`` entry
point to be available.  Output is plain JSON for downstream tools; no
rendering happens here.

Package Location: src/tspm/cli.py
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


# ===========================================================================
# Shared helpers
# ===========================================================================

def _die(message: str) -> None:
    """Print an error message and exit with status 1.

    Args:
        message: Human-readable error text.
    """
    print(f"\nError: {message}", file=sys.stderr)
    sys.exit(1)


def _require_db(db: str) -> Path:
    db_path = Path(db)
    if not db_path.exists():
        _die(
            f"Database not found: {db_path}\n"
            f"Tip: run 'tspm init --db {db_path}' first."
        )
    return db_path


def _metrics_record(metrics: Any) -> Dict[str, Any]:
    """Flatten a ``DerivedMetrics`` into a JSON-ready dict."""
    record = asdict(metrics)
    record["check_in"] = metrics.check_in.isoformat()
    record["marker_offsets"] = [
        {"kind": m.kind, "seconds": m.seconds} for m in metrics.marker_offsets
    ]
    record["service_end_offset_sec"] = metrics.service_end_offset_sec
    return record


# ===========================================================================
# Subcommand handlers
# ===========================================================================

def handle_init(args: argparse.Namespace) -> None:
    """Create the database schema and write location metadata."""
    from tspm.data.manager import DatabaseManager

    db_path = Path(args.db)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    location = args.location or db_path.stem
    with DatabaseManager(db_path) as manager:
        manager.init_db()
        manager.set_metadata(
            intersection_id=location,
            intersection_name=args.name,
            timezone=args.timezone,
        )
    print(f"Initialised {db_path} (location: {location}, timezone: {args.timezone})")


def handle_load(args: argparse.Namespace) -> None:
    """Import a ``timestamp,event_code,parameter`` CSV into the events table."""
    from tspm.data.manager import DatabaseManager
    from tspm.data.reader import read_events_csv

    db_path = _require_db(args.db)
    try:
        rows = read_events_csv(Path(args.csv))
    except (FileNotFoundError, ValueError) as exc:
        _die(str(exc))

    with DatabaseManager(db_path) as manager:
        inserted = manager.insert_events(rows)
    print(f"Inserted {inserted} of {len(rows)} events into {db_path.name}")


def handle_cycles(args: argparse.Namespace) -> None:
    """Print one JSON object per reconstructed cycle."""
    from tspm.data.priority import PriorityEngine

    engine = _engine(args, PriorityEngine)
    try:
        metrics = engine.metrics(args.start, args.end)
    except ValueError as exc:
        _die(str(exc))

    for m in metrics:
        print(json.dumps(_metrics_record(m), default=str))


def handle_summary(args: argparse.Namespace) -> None:
    """Print the window roll-up as a JSON object."""
    from tspm.data.priority import PriorityEngine

    engine = _engine(args, PriorityEngine)
    try:
        summary = engine.summary(args.start, args.end)
    except ValueError as exc:
        _die(str(exc))

    print(json.dumps(asdict(summary), default=str, indent=2))


def _engine(args: argparse.Namespace, engine_cls: Any) -> Any:
    db_path = _require_db(args.db)
    return engine_cls(
        db_path,
        timezone=args.timezone,
        location=args.location,
        lookback_hours=args.lookback_hours,
        service_end_grace_sec=args.grace,
    )


# ===========================================================================
# Argument parser
# ===========================================================================

def _add_window_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--db", required=True, metavar="PATH",
                        help="Location SQLite database.")
    parser.add_argument("--start", required=True, metavar="DATETIME",
                        help="Window start, local time (e.g. '2025-06-02 06:00').")
    parser.add_argument("--end", required=True, metavar="DATETIME",
                        help="Window end, local time, inclusive.")
    parser.add_argument("--timezone", default=None, metavar="TZ",
                        help="Override the timezone stored in the database.")
    parser.add_argument("--location", default=None, metavar="ID",
                        help="Override the location identifier stored in the database.")
    parser.add_argument("--lookback-hours", dest="lookback_hours", type=float,
                        default=12.0, metavar="H",
                        help="History loaded before --start (default: 12).")
    parser.add_argument("--grace", type=float, default=1.0, metavar="SEC",
                        help="Seconds a trailing service end may follow its "
                             "check-out (default: 1.0).")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tspm",
        description="Transit Signal Priority Measures.",
    )
    parser.add_argument("--log-level", default="WARNING", type=str.upper,
                        choices=_LOG_LEVELS, metavar="LEVEL",
                        help="Logging level: " + ", ".join(_LOG_LEVELS) +
                             " (default: WARNING).")
    parser.add_argument("--json-logs", action="store_true", default=False,
                        help="Emit logs as single-line JSON objects.")

    subs = parser.add_subparsers(dest="command", metavar="COMMAND")
    subs.required = True

    # ------------------------------------------------------------------
    # init
    # ------------------------------------------------------------------
    p_init = subs.add_parser("init", help="Create a location database.")
    p_init.add_argument("--db", required=True, metavar="PATH",
                        help="Database file to create.")
    p_init.add_argument("--location", default=None, metavar="ID",
                        help="Location identifier (default: file stem).")
    p_init.add_argument("--name", default=None, metavar="NAME",
                        help="Human-readable location name.")
    p_init.add_argument("--timezone", default="US/Mountain", metavar="TZ",
                        help="IANA timezone (default: US/Mountain).")
    p_init.set_defaults(func=handle_init)

    # ------------------------------------------------------------------
    # load
    # ------------------------------------------------------------------
    p_load = subs.add_parser("load", help="Import events from CSV.")
    p_load.add_argument("--db", required=True, metavar="PATH",
                        help="Location SQLite database.")
    p_load.add_argument("--csv", required=True, metavar="FILE",
                        help="CSV with timestamp,event_code,parameter columns.")
    p_load.set_defaults(func=handle_load)

    # ------------------------------------------------------------------
    # cycles / summary
    # ------------------------------------------------------------------
    p_cyc = subs.add_parser("cycles", help="Per-cycle timing as JSON lines.")
    _add_window_args(p_cyc)
    p_cyc.set_defaults(func=handle_cycles)

    p_sum = subs.add_parser("summary", help="Priority summary for a window.")
    _add_window_args(p_sum)
    p_sum.set_defaults(func=handle_summary)

    return parser


# ===========================================================================
# Entry point
# ===========================================================================

def main(argv: Optional[List[str]] = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate handler.

    This function is registered as the ``tspm`` console script entry point
    in ``pyproject.toml``.
    """
    from tspm.utils.logging import configure_logging

    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, json_output=args.json_logs)
    args.func(args)


if __name__ == "__main__":
    main()
