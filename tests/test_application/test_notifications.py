"""
Tests for the notification store
"""
import pytest

from subtrack.domain.records import Notification
from subtrack.application.notifications import NotificationStore
from subtrack.application.sync import SyncedCollection, by_created_at
from subtrack.infrastructure.remote_store import RowNotFoundError

USER = 1


@pytest.fixture
def notification_store(remote_store, feed):
    collection = SyncedCollection(
        "notifications", remote_store, feed, Notification.from_row, by_created_at,
        descending=True, order_by="created_at",
    )
    collection.start(USER)
    yield NotificationStore(remote_store, USER, collection)
    collection.stop()


def _add(remote_store, title, key=None, user_id=USER):
    return remote_store.insert("notifications", user_id, {
        "title": title, "message": f"{title} message", "type": "payment", "dedup_key": key,
    })


def test_items_follow_the_feed(remote_store, notification_store):
    _add(remote_store, "First", "payment:a:1")
    _add(remote_store, "Second", "payment:b:2")
    assert {n.title for n in notification_store.items} == {"First", "Second"}
    assert notification_store.unread_count == 2
    assert notification_store.known_keys() == {"payment:a:1", "payment:b:2"}


def test_mark_read(remote_store, notification_store):
    row = _add(remote_store, "First")
    updated = notification_store.mark_read(row["id"])
    assert updated.is_read is True
    assert notification_store.unread_count == 0
    assert notification_store.get(row["id"]).is_read is True


def test_mark_read_unknown_id_raises(notification_store):
    with pytest.raises(RowNotFoundError):
        notification_store.mark_read("missing")


def test_mark_all_read_only_touches_own_rows(remote_store, notification_store):
    _add(remote_store, "Mine 1")
    _add(remote_store, "Mine 2")
    _add(remote_store, "Theirs", user_id=2)

    assert notification_store.mark_all_read() == 2
    assert notification_store.unread == []
    assert remote_store.select("notifications", 2)[0]["is_read"] is False


def test_delete_and_clear_all(remote_store, notification_store):
    first = _add(remote_store, "First")
    _add(remote_store, "Second")
    _add(remote_store, "Third")

    notification_store.delete(first["id"])
    assert len(notification_store.items) == 2

    assert notification_store.clear_all() == 2
    assert notification_store.items == []
    assert remote_store.select("notifications", USER) == []
