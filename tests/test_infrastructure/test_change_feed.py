"""
Tests for the in-process change feed
"""
from unittest.mock import Mock

from subtrack.infrastructure.realtime import ChangeFeed, ChangeEvent, EVENT_INSERT, EVENT_DELETE


def _event(id="1"):
    return ChangeEvent(EVENT_INSERT, "categories", new={"id": id})


def test_publish_reaches_matching_channel_only():
    feed = ChangeFeed()
    mine, theirs, other_table = Mock(), Mock(), Mock()
    feed.subscribe("categories", 1, mine)
    feed.subscribe("categories", 2, theirs)
    feed.subscribe("subscriptions", 1, other_table)

    assert feed.publish("categories", 1, _event()) == 1
    mine.assert_called_once()
    theirs.assert_not_called()
    other_table.assert_not_called()


def test_unsubscribe_is_idempotent():
    feed = ChangeFeed()
    callback = Mock()
    channel = feed.subscribe("categories", 1, callback)
    channel.unsubscribe()
    channel.unsubscribe()

    assert feed.subscriber_count("categories", 1) == 0
    assert feed.publish("categories", 1, _event()) == 0
    callback.assert_not_called()


def test_failing_subscriber_does_not_stop_delivery():
    feed = ChangeFeed()
    healthy = Mock()
    feed.subscribe("categories", 1, Mock(side_effect=RuntimeError("boom")))
    feed.subscribe("categories", 1, healthy)

    assert feed.publish("categories", 1, _event()) == 1
    healthy.assert_called_once()


def test_subscriber_may_unsubscribe_during_delivery():
    feed = ChangeFeed()
    calls = []
    channel = None

    def once(event):
        calls.append(event)
        channel.unsubscribe()

    channel = feed.subscribe("categories", 1, once)
    feed.publish("categories", 1, _event("1"))
    feed.publish("categories", 1, _event("2"))
    assert len(calls) == 1


def test_record_id_falls_back_to_old_row():
    assert ChangeEvent(EVENT_DELETE, "categories", old={"id": "x"}).record_id == "x"
    assert ChangeEvent(EVENT_DELETE, "categories").record_id is None
