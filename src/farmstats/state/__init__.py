"""State/store layer.

This package is the single source of truth for how decoded stream
messages are folded into the per-subject/per-object aggregate.
"""

from farmstats.state.store import StatsStore

__all__ = ["StatsStore"]
