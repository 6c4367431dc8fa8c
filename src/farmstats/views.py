"""Read-side projections over a stats aggregate.

Every function here is a pure projection recomputed on each call.  None of
them mutates the aggregate they receive; pass the result of
:meth:`farmstats.state.StatsStore.snapshot_view`.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from farmstats.models.stats import StatCell

#: Default freshness window for "just changed" emphasis.
DEFAULT_FRESHNESS_WINDOW_MS = 3000


class Stamped(Protocol):
    """Anything carrying a local receipt time: cells and view rows."""

    @property
    def received_at(self) -> datetime: ...


@dataclass(frozen=True, slots=True)
class PlayerRow:
    """One subject's quantity for a given object."""

    subject: str
    quantity: int
    received_at: datetime


@dataclass(frozen=True, slots=True)
class ObjectRow:
    """One object's quantity for a given subject."""

    object_id: str
    quantity: int
    received_at: datetime


def top_players_by_object(aggregate: Mapping[str, Mapping[str, StatCell]]) -> dict[str, list[PlayerRow]]:
    """Group the aggregate by object, each group ranked by quantity.

    Rows with equal quantity keep the insertion order of their subjects in
    the aggregate (``sorted`` is stable).  No secondary key is applied.
    """
    grouped: dict[str, list[PlayerRow]] = {}
    for subject, objects in aggregate.items():
        for object_id, cell in objects.items():
            grouped.setdefault(object_id, []).append(
                PlayerRow(subject=subject, quantity=cell.quantity, received_at=cell.received_at)
            )
    return {object_id: sorted(rows, key=lambda row: row.quantity, reverse=True) for object_id, rows in grouped.items()}


def objects_for_subject(aggregate: Mapping[str, Mapping[str, StatCell]], subject: str) -> list[ObjectRow]:
    """List one subject's objects ranked by quantity (stable on ties)."""
    objects = aggregate.get(subject)
    if not objects:
        return []
    rows = [
        ObjectRow(object_id=object_id, quantity=cell.quantity, received_at=cell.received_at)
        for object_id, cell in objects.items()
    ]
    return sorted(rows, key=lambda row: row.quantity, reverse=True)


def filter_by_substring(keys: Iterable[str], needle: str) -> list[str]:
    """Keep keys containing *needle* (case-sensitive), preserving order."""
    return [key for key in keys if needle in key]


def is_recently_changed(cell: Stamped, now: datetime, window_ms: int = DEFAULT_FRESHNESS_WINDOW_MS) -> bool:
    """Whether *cell* was mutated less than *window_ms* away from *now*.

    Time-window based: callers must re-evaluate on a tick (see
    :func:`refresh_ticks`) so the highlight expires without new messages.
    """
    delta_ms = abs((now - cell.received_at).total_seconds()) * 1000.0
    return delta_ms < window_ms


def object_label(object_id: str) -> str:
    """Short display label: the final ``/`` segment of a path-like id."""
    stripped = object_id.rstrip("/")
    if not stripped:
        return object_id
    return stripped.rsplit("/", 1)[-1]


def _utcnow() -> datetime:
    return datetime.now(UTC)


async def refresh_ticks(
    interval: float = 1.0,
    *,
    clock: Callable[[], datetime] = _utcnow,
) -> AsyncIterator[datetime]:
    """Yield the current time every *interval* seconds, starting immediately.

    Drives re-evaluation of :func:`is_recently_changed` while no messages
    arrive.  Stops when the consuming task is cancelled or the iterator is
    closed.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")
    while True:
        yield clock()
        await asyncio.sleep(interval)
