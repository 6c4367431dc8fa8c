"""Aggregate cell model."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TypeAlias

from pydantic import NonNegativeInt, field_validator

from farmstats.models._base import StatsBaseModel, UnixSeconds


class StatCell(StatsBaseModel):
    """Aggregated quantity of one object for one subject.

    Cells are immutable; the store replaces a cell on every mutation so
    views holding an older aggregate copy never observe a change.

    Parameters
    ----------
    quantity : int
        Accumulated counter.  Never decreases while a connection lasts.
    first_seen : float
        Event time (epoch seconds) of the first contribution.
    last_seen : float
        Event time (epoch seconds) of the latest contribution.
    received_at : datetime
        Local UTC wall-clock time of the last local mutation.  Freshness
        queries use this instead of the remote event times.
    """

    quantity: NonNegativeInt
    first_seen: UnixSeconds
    last_seen: UnixSeconds
    received_at: datetime

    @field_validator("received_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


StatsAggregate: TypeAlias = dict[str, dict[str, StatCell]]
"""``{subject: {object_id: StatCell}}``."""
