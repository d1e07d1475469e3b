"""Location timezone resolution and report-window localization."""

import logging
from datetime import datetime
from typing import Optional, Union

import pandas as pd
import pytz
from pytz import BaseTzInfo

logger = logging.getLogger(__name__)


def resolve_pytz(tz_string: Optional[str]) -> BaseTzInfo:
    """Resolve an IANA timezone name to a pytz timezone object.

    Falls back to UTC with a warning if the name is missing or unknown.

    Args:
        tz_string: IANA timezone (e.g. 'America/Boise', 'US/Mountain').

    Returns:
        pytz timezone object (always valid).
    """
    if not tz_string:
        logger.warning("No timezone provided; falling back to UTC.")
        return pytz.utc

    try:
        return pytz.timezone(tz_string)
    except pytz.UnknownTimeZoneError:
        logger.warning(
            f"Unknown timezone '{tz_string}'; falling back to UTC.",
            extra={"timezone": tz_string},
        )
        return pytz.utc


def localize(value: Union[str, datetime], tz: BaseTzInfo) -> datetime:
    """Interpret a report-window bound in the location timezone.

    Naive datetimes and offset-free strings are treated as local wall-clock
    time; aware values are converted into *tz*.

    Args:
        value: ``datetime`` or ISO string (``'2025-06-01'``,
            ``'2025-06-01T07:00'``, ...).
        tz: Location timezone.

    Returns:
        Timezone-aware datetime in *tz*.

    Raises:
        ValueError: If *value* is not a parseable date/time.
    """
    ts = pd.Timestamp(value)
    if ts is pd.NaT:
        raise ValueError(f"Not a date/time: {value!r}")
    dt = ts.to_pydatetime()
    if dt.tzinfo is None:
        return tz.localize(dt)
    return dt.astimezone(tz)
