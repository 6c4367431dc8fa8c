"""Inbound stats stream messages.

The stream carries exactly two shapes:

* a *snapshot*, the full aggregate keyed by subject then object, sent in
  reply to the ``init`` command;
* an *increment*, a single delta event tagged with a category.

:data:`StatsMessage` is the closed union of both.
"""

from __future__ import annotations

import enum
from typing import Annotated, TypeAlias

from pydantic import BeforeValidator, Field, NonNegativeInt, RootModel

from farmstats.models._base import OpaqueId, StatsBaseModel, UnixSeconds, require_integer


class IncrementCategory(enum.IntEnum):
    """Event category emitted by the server-side activity sink."""

    PVP = 0
    PVE = 1
    FARM = 2
    WORLD = 3


class StatsIncrement(StatsBaseModel):
    """A single quantity change for one (subject, object) pair.

    Parameters
    ----------
    category : IncrementCategory
        Event category.  Only ``FARM`` increments are folded into the
        aggregate.
    timestamp : float
        Epoch seconds of when the event occurred on the game server.
    subject : str
        Actor the event is attributed to, e.g. a 17-digit Steam ID.
        Wire name ``id_subject``.
    object_id : str
        Tracked resource, e.g. ``"wood"``.  Wire name ``id_object``.
    quantity : int
        Non-negative delta.
    """

    category: Annotated[IncrementCategory, BeforeValidator(require_integer)]
    timestamp: UnixSeconds
    subject: OpaqueId = Field(alias="id_subject")
    object_id: OpaqueId = Field(alias="id_object")
    quantity: NonNegativeInt = Field(strict=True)

    @property
    def is_farm(self) -> bool:
        return self.category == IncrementCategory.FARM


class SnapshotEntry(StatsBaseModel):
    """Per-cell payload of a snapshot."""

    quantity: NonNegativeInt = Field(alias="Quantity", strict=True)
    first_seen: UnixSeconds = Field(alias="Timestamp_unix_sec_init")
    last_seen: UnixSeconds = Field(alias="Timestamp_unix_sec_latest")


class StatsSnapshot(RootModel[dict[OpaqueId, dict[OpaqueId, SnapshotEntry]]]):
    """Full aggregate state: ``{subject: {object: SnapshotEntry}}``."""

    def cells(self) -> list[tuple[str, str, SnapshotEntry]]:
        """Flatten to ``(subject, object_id, entry)`` triples in payload order."""
        return [
            (subject, object_id, entry)
            for subject, objects in self.root.items()
            for object_id, entry in objects.items()
        ]

    @property
    def subject_count(self) -> int:
        return len(self.root)


StatsMessage: TypeAlias = StatsSnapshot | StatsIncrement
