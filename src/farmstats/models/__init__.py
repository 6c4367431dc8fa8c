"""Data models for the stats stream and the aggregate."""

from farmstats.models._base import (
    OpaqueId,
    StatsBaseModel,
    UnixSeconds,
    normalize_timestamp_seconds,
    require_integer,
)
from farmstats.models.messages import (
    IncrementCategory,
    SnapshotEntry,
    StatsIncrement,
    StatsMessage,
    StatsSnapshot,
)
from farmstats.models.stats import StatCell, StatsAggregate

__all__ = [
    "IncrementCategory",
    "OpaqueId",
    "SnapshotEntry",
    "StatCell",
    "StatsAggregate",
    "StatsBaseModel",
    "StatsIncrement",
    "StatsMessage",
    "StatsSnapshot",
    "UnixSeconds",
    "normalize_timestamp_seconds",
    "require_integer",
]
