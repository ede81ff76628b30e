"""
Tests for the remote-sync state container
"""
from datetime import datetime
from decimal import Decimal
from itertools import permutations
from unittest.mock import Mock

import pytest

from subtrack.domain.records import Category, Subscription
from subtrack.application.sync import (
    CollectionReducer, CollectionState, SyncedCollection,
    Started, FetchSucceeded, FetchFailed, ChangeReceived, Reset,
    by_name, UNINITIALIZED, LOADING, READY, ERROR,
)
from subtrack.infrastructure.realtime import ChangeEvent, EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE
from subtrack.infrastructure.remote_store import RemoteStoreError

USER = 1


def _row(id, name, updated_at=None, budget="10"):
    return {"id": id, "user_id": USER, "name": name, "budget": budget, "updated_at": updated_at}


def insert(row):
    return ChangeEvent(EVENT_INSERT, "categories", new=row)


def update(row, old=None):
    return ChangeEvent(EVENT_UPDATE, "categories", new=row, old=old)


def delete(id):
    return ChangeEvent(EVENT_DELETE, "categories", old={"id": id})


@pytest.fixture
def reducer():
    return CollectionReducer(Category.from_row, by_name)


@pytest.fixture
def ready(reducer):
    state = reducer(CollectionState(), Started(1))
    return reducer(state, FetchSucceeded((), 1))


def apply_all(reducer, state, events):
    for event in events:
        state = reducer(state, ChangeReceived(event))
    return state


# === Reducer ===

class TestReducer:
    def test_start_then_fetch(self, reducer):
        state = reducer(CollectionState(), Started(1))
        assert state.status == LOADING
        rows = (Category.from_row(_row("b", "Beta")), Category.from_row(_row("a", "Alpha")))
        state = reducer(state, FetchSucceeded(rows, 1))
        assert state.status == READY
        assert [c.name for c in state.items] == ["Alpha", "Beta"]

    def test_fetch_failure_clears_and_keeps_message(self, reducer):
        state = reducer(CollectionState(), Started(1))
        state = reducer(state, FetchFailed("Failed to fetch categories", 1))
        assert state.status == ERROR
        assert state.items == ()
        assert state.error == "Failed to fetch categories"

    def test_stale_generation_fetch_is_dropped(self, reducer):
        state = reducer(CollectionState(), Started(1))
        state = reducer(state, Reset(2))
        late = reducer(state, FetchSucceeded((Category.from_row(_row("a", "A")),), 1))
        assert late is state
        assert late.status == UNINITIALIZED

    def test_insert_in_sort_order(self, reducer, ready):
        state = apply_all(reducer, ready, [insert(_row("2", "Music")), insert(_row("1", "Apps"))])
        assert [c.name for c in state.items] == ["Apps", "Music"]

    def test_update_of_absent_id_is_not_shown(self, reducer, ready):
        state = reducer(ready, ChangeReceived(update(_row("x", "Ghost"))))
        assert state.items == ()
        assert [c.id for c in state.early_updates] == ["x"]

    def test_early_update_wins_over_older_insert(self, reducer, ready):
        v1 = _row("1", "Apps", updated_at=datetime(2026, 1, 1), budget="10")
        v2 = _row("1", "Apps", updated_at=datetime(2026, 1, 2), budget="20")
        state = apply_all(reducer, ready, [update(v2), insert(v1)])
        assert state.items == (Category.from_row(v2),)
        assert state.early_updates == ()

    def test_fetch_drops_early_updates(self, reducer, ready):
        state = reducer(ready, ChangeReceived(update(_row("x", "Ghost"))))
        state = reducer(state, Started(2))
        state = reducer(state, FetchSucceeded((), 2))
        assert state.early_updates == ()

    def test_update_replaces_and_resorts(self, reducer, ready):
        state = apply_all(reducer, ready, [insert(_row("1", "Apps")), insert(_row("2", "Music"))])
        state = reducer(state, ChangeReceived(update(_row("1", "Zen"))))
        assert [c.name for c in state.items] == ["Music", "Zen"]

    def test_double_delete_equals_single_delete(self, reducer, ready):
        base = apply_all(reducer, ready, [insert(_row("1", "Apps")), insert(_row("2", "Music"))])
        once = reducer(base, ChangeReceived(delete("1")))
        twice = reducer(once, ChangeReceived(delete("1")))
        assert twice.items == once.items
        assert [c.id for c in once.items] == ["2"]

    def test_duplicate_insert_replaces(self, reducer, ready):
        state = apply_all(reducer, ready, [insert(_row("1", "Apps")), insert(_row("1", "Apps", budget="20"))])
        assert len(state.items) == 1
        assert state.items[0].budget == Decimal("20")

    def test_delete_blocks_late_insert(self, reducer, ready):
        state = apply_all(reducer, ready, [delete("1"), insert(_row("1", "Apps"))])
        assert state.items == ()

    @pytest.mark.parametrize("events", [
        [insert(_row("1", "A")), insert(_row("2", "B")), delete("1")],
        [insert(_row("1", "A")), delete("1")],
        [insert(_row("1", "A")), insert(_row("2", "B")), insert(_row("3", "C")), delete("2")],
        [
            insert(_row("1", "A", updated_at=datetime(2026, 1, 1), budget="10")),
            update(_row("1", "A", updated_at=datetime(2026, 1, 2), budget="20")),
        ],
        [
            insert(_row("1", "A", updated_at=datetime(2026, 1, 1), budget="10")),
            update(_row("1", "A", updated_at=datetime(2026, 1, 2), budget="20")),
            update(_row("1", "Z", updated_at=datetime(2026, 1, 3), budget="30")),
            insert(_row("2", "B", updated_at=datetime(2026, 1, 1))),
        ],
        [
            insert(_row("1", "A", updated_at=datetime(2026, 1, 1))),
            update(_row("1", "A", updated_at=datetime(2026, 1, 2), budget="20")),
            delete("1"),
        ],
    ])
    def test_converges_under_any_order(self, reducer, ready, events):
        expected = apply_all(reducer, ready, events).items
        for order in permutations(events):
            assert apply_all(reducer, ready, order).items == expected

    def test_older_update_does_not_overwrite_newer(self, reducer, ready):
        newer = _row("1", "New name", updated_at=datetime(2026, 3, 10, 12, 0))
        older = _row("1", "Old name", updated_at=datetime(2026, 3, 10, 11, 0))
        state = apply_all(reducer, ready, [insert(newer), update(older)])
        assert state.items[0].name == "New name"

    def test_events_while_loading_are_buffered(self, reducer):
        state = reducer(CollectionState(), Started(1))
        state = reducer(state, ChangeReceived(insert(_row("2", "Late"))))
        state = reducer(state, ChangeReceived(delete("1")))
        assert state.items == ()

        fetched = (Category.from_row(_row("1", "Fetched")),)
        state = reducer(state, FetchSucceeded(fetched, 1))
        assert state.status == READY
        assert state.ids() == ["2"]
        assert state.pending == ()

    def test_events_ignored_when_not_started(self, reducer):
        state = CollectionState()
        assert reducer(state, ChangeReceived(insert(_row("1", "A")))) is state

    def test_fresh_fetch_drops_tombstones(self, reducer, ready):
        state = reducer(ready, ChangeReceived(delete("1")))
        assert "1" in state.tombstones
        state = reducer(state, FetchSucceeded((Category.from_row(_row("1", "Back")),), state.generation))
        assert state.tombstones == frozenset()
        assert state.ids() == ["1"]


# === Container ===

class TestSyncedCollection:
    def _collection(self, remote_store, feed, **kwargs):
        return SyncedCollection(
            "categories", remote_store, feed, Category.from_row, by_name, order_by="name", **kwargs,
        )

    def test_start_fetches_and_follows_feed(self, remote_store, feed):
        remote_store.insert("categories", USER, {"name": "Video", "budget": 30})
        collection = self._collection(remote_store, feed)
        collection.start(USER)

        assert collection.status == READY
        assert [c.name for c in collection.items] == ["Video"]

        row = remote_store.insert("categories", USER, {"name": "Apps", "budget": 5})
        assert [c.name for c in collection.items] == ["Apps", "Video"]

        remote_store.update("categories", USER, row["id"], {"budget": 7})
        assert collection.items[0].budget == Decimal("7")

        remote_store.delete("categories", USER, row["id"])
        assert [c.name for c in collection.items] == ["Video"]

    def test_other_users_rows_are_not_seen(self, remote_store, feed):
        collection = self._collection(remote_store, feed)
        collection.start(USER)
        remote_store.insert("categories", 2, {"name": "Theirs", "budget": 1})
        assert collection.items == []

    def test_fetch_failure_enters_error_and_refresh_recovers(self, feed):
        store = Mock()
        store.select.side_effect = RemoteStoreError("boom")
        collection = SyncedCollection("categories", store, feed, Category.from_row)
        collection.start(USER)

        assert collection.status == ERROR
        assert collection.items == []
        assert collection.error == "Failed to fetch categories"

        store.select.side_effect = None
        store.select.return_value = [_row("1", "Video")]
        collection.refresh()
        assert collection.status == READY
        assert [c.id for c in collection.items] == ["1"]

    def test_stop_unsubscribes_and_clears(self, remote_store, feed):
        remote_store.insert("categories", USER, {"name": "Video", "budget": 30})
        collection = self._collection(remote_store, feed)
        listener = Mock()
        collection.start(USER)
        collection.add_listener(listener)

        collection.stop()
        assert collection.status == UNINITIALIZED
        assert collection.items == []
        assert feed.subscriber_count("categories", USER) == 0

        listener.reset_mock()
        remote_store.insert("categories", USER, {"name": "Apps", "budget": 1})
        assert collection.items == []
        listener.assert_not_called()

    def test_listener_sees_changes(self, remote_store, feed):
        collection = self._collection(remote_store, feed)
        seen = []
        remove = collection.add_listener(lambda state: seen.append(state.status))
        collection.start(USER)
        assert seen == [LOADING, READY]

        remove()
        remote_store.insert("categories", USER, {"name": "Apps", "budget": 1})
        assert seen == [LOADING, READY]

    def test_failing_listener_does_not_break_apply(self, remote_store, feed):
        collection = self._collection(remote_store, feed)
        collection.add_listener(Mock(side_effect=RuntimeError("listener bug")))
        collection.start(USER)
        remote_store.insert("categories", USER, {"name": "Apps", "budget": 1})
        assert [c.name for c in collection.items] == ["Apps"]

    def test_resync_on_update_refetches(self, remote_store, feed):
        row = remote_store.insert("categories", USER, {"name": "Video", "budget": 30})
        collection = self._collection(remote_store, feed, resync_on=frozenset({EVENT_UPDATE}))
        collection.start(USER)

        spy = Mock(wraps=remote_store.select)
        collection.store = Mock(select=spy)
        remote_store.update("categories", USER, row["id"], {"name": "Streaming"})

        spy.assert_called_once()
        assert [c.name for c in collection.items] == ["Streaming"]

    def test_start_twice_for_same_user_is_noop(self, remote_store, feed):
        collection = self._collection(remote_store, feed)
        collection.start(USER)
        collection.start(USER)
        assert feed.subscriber_count("categories", USER) == 1

    def test_subscriptions_collection(self, remote_store, feed):
        collection = SyncedCollection("subscriptions", remote_store, feed, Subscription.from_row, by_name)
        collection.start(USER)
        remote_store.insert("subscriptions", USER, {
            "name": "Netflix", "amount": Decimal("15.49"), "next_billing_date": datetime(2026, 3, 15).date(),
        })
        assert collection.items[0].monthly_amount == Decimal("15.49")
