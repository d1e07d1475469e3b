"""
TSPM Analysis Package (Functional Core)

This package contains pure transformation functions with no I/O.
All functions accept plain data structures (events, samples, DataFrames)
and return new ones.

Modules:
- events:     Event vocabulary, parsing and validation
- cycles:     Priority request cycle reconstruction
- metrics:    Per-cycle durations, marker offsets, window summary
- statistics: Descriptive statistics per grouping key
- buckets:    Calendar time-bucket aggregation and volume profiles
"""

from .events import (
    InvalidEvent,
    EventCode,
    Event,
    PRIORITY_CODES,
    parse_event,
    parse_events,
    events_from_frame,
    count_codes,
)

from .cycles import (
    InvertedInterval,
    Marker,
    MarkerOffset,
    Cycle,
    reconstruct,
    cycles_to_frame,
)

from .metrics import (
    DerivedMetrics,
    PrioritySummary,
    derive,
    metrics_frame,
    marker_frame,
    summarize_priority,
)

from .statistics import (
    StatSummary,
    summarize,
    summarize_groups,
    summaries_frame,
)

from .buckets import (
    Granularity,
    CountSample,
    Bucket,
    truncate,
    aggregate,
    buckets_to_frame,
    volume_profile,
    average_daily_volume,
)

__all__ = [
    # Events
    'InvalidEvent',
    'EventCode',
    'Event',
    'PRIORITY_CODES',
    'parse_event',
    'parse_events',
    'events_from_frame',
    'count_codes',
    # Cycles
    'InvertedInterval',
    'Marker',
    'MarkerOffset',
    'Cycle',
    'reconstruct',
    'cycles_to_frame',
    # Metrics
    'DerivedMetrics',
    'PrioritySummary',
    'derive',
    'metrics_frame',
    'marker_frame',
    'summarize_priority',
    # Statistics
    'StatSummary',
    'summarize',
    'summarize_groups',
    'summaries_frame',
    # Buckets
    'Granularity',
    'CountSample',
    'Bucket',
    'truncate',
    'aggregate',
    'buckets_to_frame',
    'volume_profile',
    'average_daily_volume',
]
