"""Deterministic in-memory stats aggregate.

This is the only component allowed to mutate the aggregate.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from farmstats.models.messages import StatsIncrement, StatsMessage, StatsSnapshot
from farmstats.models.stats import StatCell, StatsAggregate

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StatsStore:
    """In-memory store for the subject -> object -> cell aggregate.

    Given the same sequence of messages and clock readings, the store
    produces the same aggregate.  Increments are folded in receipt order
    and never deduplicated; a replayed increment is counted twice.

    The store is not thread-safe.  All mutation is expected to happen on
    one event loop; readers take point-in-time copies through
    :meth:`snapshot_view`.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._cells: StatsAggregate = {}
        self._version = 0
        self._snapshot_received_at: datetime | None = None

    @property
    def version(self) -> int:
        """Monotonic counter bumped by every mutation."""
        return self._version

    @property
    def snapshot_received_at(self) -> datetime | None:
        """Local time the last snapshot was applied, ``None`` before the first."""
        return self._snapshot_received_at

    def apply(self, message: StatsMessage) -> bool:
        """Apply a decoded stream message.  Returns whether the aggregate changed."""
        if isinstance(message, StatsIncrement):
            return self.apply_increment(message)
        self.apply_snapshot(message)
        return True

    def apply_snapshot(self, snapshot: StatsSnapshot) -> None:
        """Replace the whole aggregate.

        Every cell is stamped with the local receipt time, not the remote
        event time, so freshness windows are immune to server clock skew.
        """
        now = self._clock()
        cells: StatsAggregate = {}
        for subject, object_id, entry in snapshot.cells():
            cells.setdefault(subject, {})[object_id] = StatCell(
                quantity=entry.quantity,
                first_seen=entry.first_seen,
                last_seen=entry.last_seen,
                received_at=now,
            )
        self._cells = cells
        self._snapshot_received_at = now
        self._version += 1
        _logger.debug("Applied snapshot subjects=%s version=%s", len(cells), self._version)

    def apply_increment(self, increment: StatsIncrement) -> bool:
        """Merge a single delta into the aggregate.

        Only farm increments participate; other categories are accepted and
        ignored.  Returns ``True`` when the aggregate changed.
        """
        if not increment.is_farm:
            _logger.debug("Ignoring %s increment for subject=%s", increment.category.name, increment.subject)
            return False

        now = self._clock()
        objects = self._cells.setdefault(increment.subject, {})
        current = objects.get(increment.object_id)
        if current is None:
            objects[increment.object_id] = StatCell(
                quantity=increment.quantity,
                first_seen=increment.timestamp,
                last_seen=increment.timestamp,
                received_at=now,
            )
        else:
            # first_seen is never reset by an update.
            objects[increment.object_id] = current.model_copy(
                update={
                    "quantity": current.quantity + increment.quantity,
                    "last_seen": increment.timestamp,
                    "received_at": now,
                }
            )
        self._version += 1
        return True

    def get_cell(self, subject: str, object_id: str) -> StatCell | None:
        objects = self._cells.get(subject)
        if objects is None:
            return None
        return objects.get(object_id)

    def snapshot_view(self) -> StatsAggregate:
        """Return a point-in-time copy of the aggregate.

        Both dict levels are copied and cells are immutable, so later store
        mutations never show through, and mutating the returned dicts never
        reaches the store.
        """
        return {subject: dict(objects) for subject, objects in self._cells.items()}

    def __len__(self) -> int:
        return sum(len(objects) for objects in self._cells.values())
