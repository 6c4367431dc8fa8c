from __future__ import annotations

from datetime import UTC, datetime, timedelta

from farmstats.models.messages import IncrementCategory, SnapshotEntry, StatsIncrement, StatsSnapshot
from farmstats.state.store import StatsStore

STEAM_ID = "76561198000000001"
OTHER_ID = "76561198000000002"


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _snapshot(data: dict[str, dict[str, tuple[int, float, float]]]) -> StatsSnapshot:
    return StatsSnapshot.model_validate(
        {
            subject: {
                obj: {"Quantity": q, "Timestamp_unix_sec_init": first, "Timestamp_unix_sec_latest": last}
                for obj, (q, first, last) in objects.items()
            }
            for subject, objects in data.items()
        }
    )


def _farm(subject: str, obj: str, quantity: int, timestamp: float = 1050.0) -> StatsIncrement:
    return StatsIncrement(
        category=IncrementCategory.FARM,
        timestamp=timestamp,
        subject=subject,
        object_id=obj,
        quantity=quantity,
    )


def test_snapshot_then_farm_increment_adds_quantity() -> None:
    store = StatsStore(clock=_Clock())
    store.apply_snapshot(_snapshot({STEAM_ID: {"wood": (100, 1000.0, 1000.0)}}))

    assert store.apply_increment(_farm(STEAM_ID, "wood", 25, timestamp=1050.0)) is True

    cell = store.get_cell(STEAM_ID, "wood")
    assert cell is not None
    assert cell.quantity == 125
    assert cell.last_seen == 1050.0
    assert cell.first_seen == 1000.0


def test_snapshot_stamps_local_receipt_time_not_event_time() -> None:
    clock = _Clock()
    store = StatsStore(clock=clock)

    store.apply_snapshot(_snapshot({STEAM_ID: {"wood": (1, 10.0, 20.0)}, OTHER_ID: {"stone": (2, 30.0, 40.0)}}))

    for objects in store.snapshot_view().values():
        for cell in objects.values():
            assert cell.received_at == clock.now
    assert store.snapshot_received_at == clock.now


def test_snapshot_replaces_previous_aggregate() -> None:
    store = StatsStore(clock=_Clock())
    store.apply_snapshot(_snapshot({STEAM_ID: {"wood": (100, 1.0, 1.0)}}))
    store.apply_increment(_farm(OTHER_ID, "stone", 4))

    store.apply_snapshot(_snapshot({OTHER_ID: {"metal": (9, 2.0, 2.0)}}))

    assert store.snapshot_view().keys() == {OTHER_ID}
    assert store.get_cell(STEAM_ID, "wood") is None
    assert store.get_cell(OTHER_ID, "stone") is None


def test_apply_snapshot_is_idempotent() -> None:
    store = StatsStore(clock=_Clock())
    snapshot = _snapshot({STEAM_ID: {"wood": (100, 1.0, 2.0)}, OTHER_ID: {"stone": (5, 3.0, 4.0)}})

    store.apply_snapshot(snapshot)
    first = store.snapshot_view()
    store.apply_snapshot(snapshot)

    assert store.snapshot_view() == first


def test_non_farm_increments_never_change_quantity() -> None:
    store = StatsStore(clock=_Clock())
    store.apply_snapshot(_snapshot({STEAM_ID: {"wood": (100, 1.0, 1.0)}}))
    before = store.snapshot_view()
    version = store.version

    for category in (IncrementCategory.PVP, IncrementCategory.PVE, IncrementCategory.WORLD):
        changed = store.apply_increment(
            StatsIncrement(category=category, timestamp=5.0, subject=STEAM_ID, object_id="wood", quantity=50)
        )
        assert changed is False
        store.apply_increment(
            StatsIncrement(category=category, timestamp=5.0, subject=OTHER_ID, object_id="kills", quantity=1)
        )

    assert store.snapshot_view() == before
    assert store.version == version


def test_back_to_back_increments_for_unseen_pair_create_one_cell() -> None:
    store = StatsStore(clock=_Clock())

    store.apply_increment(_farm(STEAM_ID, "sulfur", 5, timestamp=200.0))
    store.apply_increment(_farm(STEAM_ID, "sulfur", 7, timestamp=210.0))

    view = store.snapshot_view()
    assert list(view[STEAM_ID]) == ["sulfur"]
    cell = view[STEAM_ID]["sulfur"]
    assert cell.quantity == 12
    assert cell.first_seen == 200.0
    assert cell.last_seen == 210.0
    assert len(store) == 1


def test_quantity_equals_snapshot_plus_sum_of_farm_increments() -> None:
    store = StatsStore(clock=_Clock())
    store.apply_snapshot(_snapshot({STEAM_ID: {"wood": (10, 1.0, 1.0)}}))
    deltas = [3, 0, 17, 1, 250, 4]
    expected: dict[tuple[str, str], int] = {(STEAM_ID, "wood"): 10}

    for i, delta in enumerate(deltas):
        for subject, obj in ((STEAM_ID, "wood"), (OTHER_ID, "wood"), (STEAM_ID, "cloth")):
            store.apply_increment(_farm(subject, obj, delta, timestamp=1000.0 + i))
            expected[(subject, obj)] = expected.get((subject, obj), 0) + delta
        store.apply_increment(
            StatsIncrement(category=IncrementCategory.PVE, timestamp=1.0, subject=STEAM_ID, object_id="wood", quantity=99)
        )

    for (subject, obj), quantity in expected.items():
        cell = store.get_cell(subject, obj)
        assert cell is not None
        assert cell.quantity == quantity


def test_duplicate_increment_is_counted_twice() -> None:
    store = StatsStore(clock=_Clock())
    increment = _farm(STEAM_ID, "wood", 5)

    store.apply(increment)
    store.apply(increment)

    cell = store.get_cell(STEAM_ID, "wood")
    assert cell is not None
    assert cell.quantity == 10


def test_increment_refreshes_received_at() -> None:
    clock = _Clock()
    store = StatsStore(clock=clock)
    store.apply_snapshot(_snapshot({STEAM_ID: {"wood": (1, 1.0, 1.0)}}))

    clock.advance(10)
    store.apply_increment(_farm(STEAM_ID, "wood", 1))

    cell = store.get_cell(STEAM_ID, "wood")
    assert cell is not None
    assert cell.received_at == clock.now


def test_snapshot_view_is_isolated_from_later_mutation() -> None:
    store = StatsStore(clock=_Clock())
    store.apply_increment(_farm(STEAM_ID, "wood", 5))

    view = store.snapshot_view()
    store.apply_increment(_farm(STEAM_ID, "wood", 5))
    store.apply_increment(_farm(STEAM_ID, "stone", 1))

    assert view[STEAM_ID]["wood"].quantity == 5
    assert "stone" not in view[STEAM_ID]


def test_mutating_snapshot_view_does_not_reach_store() -> None:
    store = StatsStore(clock=_Clock())
    store.apply_increment(_farm(STEAM_ID, "wood", 5))

    view = store.snapshot_view()
    view[STEAM_ID].clear()
    view.clear()

    assert store.get_cell(STEAM_ID, "wood") is not None


def test_apply_dispatches_on_message_variant() -> None:
    store = StatsStore(clock=_Clock())

    assert store.apply(_snapshot({STEAM_ID: {"wood": (1, 1.0, 1.0)}})) is True
    assert store.apply(_farm(STEAM_ID, "wood", 2)) is True
    assert store.version == 2

    cell = store.get_cell(STEAM_ID, "wood")
    assert cell is not None
    assert cell.quantity == 3


def test_snapshot_entry_accepts_field_names() -> None:
    entry = SnapshotEntry(quantity=1, first_seen=2.0, last_seen=3.0)

    assert entry.quantity == 1
