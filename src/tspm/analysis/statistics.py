"""
Descriptive Statistics (Functional Core)

Pure functions only. No I/O, no SQL, no side effects.

Produces one ``StatSummary`` per grouping key (typically a location), either
by passing through an upstream summary or by reducing raw count samples.

Package Location: src/tspm/analysis/statistics.py

Count Convention:
    ``count`` is the total of the observed quantity (the sum of the
    samples), not the number of samples.  ``sample_size`` carries the
    number of samples.

Empty Rule:
    An empty sample list yields a zeroed summary (every numeric field 0,
    ``is_empty`` True).  Nothing here returns ``None`` or raises for empty
    input.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

_PERCENTILES: List[float] = [25.0, 50.0, 75.0]

# Upstream summary field names (API camelCase) -> StatSummary fields.
_UPSTREAM_ALIASES: Dict[str, str] = {
    "twentyFifthPercentile": "p25",
    "fiftiethPercentile": "p50",
    "seventyFifthPercentile": "p75",
    "missingCount": "missing_count",
    "events": "sample_size",
}


@dataclass(frozen=True)
class StatSummary:
    group_key: str
    count: float = 0.0
    mean: float = 0.0
    std: float = 0.0
    min: float = 0.0
    p25: float = 0.0
    p50: float = 0.0
    p75: float = 0.0
    max: float = 0.0
    missing_count: int = 0
    sample_size: int = 0

    @property
    def is_empty(self) -> bool:
        """True when no samples contributed (zeros are placeholders)."""
        return self.sample_size == 0

    @classmethod
    def from_mapping(cls, group_key: str, data: Mapping[str, Any]) -> "StatSummary":
        """
        Build a summary from an upstream summary object.

        Accepts either the snake-case field names of this class or the
        camelCase names of the upstream API (``twentyFifthPercentile``,
        ``missingCount``, ...).  Missing or non-numeric fields become 0.

        Args:
            group_key: Grouping key for the summary.
            data: Upstream mapping.

        Returns:
            StatSummary.
        """
        values: Dict[str, Any] = {}
        for raw_key, raw_value in data.items():
            name = _UPSTREAM_ALIASES.get(raw_key, raw_key)
            values[name] = raw_value

        kwargs: Dict[str, Any] = {"group_key": group_key}
        for f in fields(cls):
            if f.name == "group_key":
                continue
            number = _to_number(values.get(f.name))
            kwargs[f.name] = int(number) if f.type == "int" else number
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def summarize(
    group_key: str,
    samples: Optional[Iterable[float]] = None,
    precomputed: Optional[Any] = None,
) -> StatSummary:
    """
    Summarize one group.

    Args:
        group_key: Grouping key (e.g. location identifier).
        samples: Raw per-timestamp observations.  Non-finite values are
            ignored.
        precomputed: Authoritative upstream summary, either a
            ``StatSummary`` or a mapping accepted by
            :meth:`StatSummary.from_mapping`.  When given, *samples* is
            not consulted.  The result always carries *group_key*.

    Returns:
        StatSummary.  ``missing_count`` is only non-zero when supplied by
        *precomputed*.
    """
    if precomputed is not None:
        if isinstance(precomputed, StatSummary):
            if precomputed.group_key == group_key:
                return precomputed
            return replace(precomputed, group_key=group_key)
        return StatSummary.from_mapping(group_key, precomputed)

    values = _finite_array(samples)
    if values.size == 0:
        return StatSummary(group_key=group_key)

    p25, p50, p75 = np.percentile(values, _PERCENTILES)

    return StatSummary(
        group_key=group_key,
        count=float(values.sum()),
        mean=float(values.mean()),
        std=float(values.std()),
        min=float(values.min()),
        p25=float(p25),
        p50=float(p50),
        p75=float(p75),
        max=float(values.max()),
        missing_count=0,
        sample_size=int(values.size),
    )


def summarize_groups(
    samples_by_group: Mapping[str, Iterable[float]],
    precomputed_by_group: Optional[Mapping[str, Any]] = None,
) -> List[StatSummary]:
    """
    Summarize every group, preferring an upstream summary when present.

    Args:
        samples_by_group: ``{group_key: samples}``.
        precomputed_by_group: Optional ``{group_key: summary}``; groups
            listed here but absent from *samples_by_group* are included.

    Returns:
        Summaries in first-seen group order.
    """
    precomputed_by_group = precomputed_by_group or {}
    keys: List[str] = list(samples_by_group)
    keys.extend(k for k in precomputed_by_group if k not in samples_by_group)

    return [
        summarize(
            key,
            samples=samples_by_group.get(key),
            precomputed=precomputed_by_group.get(key),
        )
        for key in keys
    ]


def summaries_frame(summaries: Iterable[StatSummary]) -> pd.DataFrame:
    """Tabulate summaries, one row per group, indexed by ``group_key``."""
    columns = [f.name for f in fields(StatSummary)]
    rows = [asdict(s) for s in summaries]
    df = pd.DataFrame(rows, columns=columns)
    return df.set_index("group_key")


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _finite_array(samples: Optional[Iterable[float]]) -> np.ndarray:
    if samples is None:
        return np.empty(0, dtype=float)
    values = pd.to_numeric(pd.Series(list(samples), dtype=object), errors="coerce")
    arr = values.to_numpy(dtype=float, na_value=np.nan)
    return arr[np.isfinite(arr)]


def _to_number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0
