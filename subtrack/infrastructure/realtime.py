"""
Change feed — pushes row-level INSERT/UPDATE/DELETE events to subscribers.

Channels are keyed by (table, user_id), the same filter the managed backend's
realtime API uses (`user_id=eq.<id>`). Delivery is synchronous and in-process;
no offsets, no replay: a subscriber only sees events published while it is
connected.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"
EVENT_TYPES = frozenset({EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE})


@dataclass(frozen=True)
class ChangeEvent:
    event_type: str
    table: str
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None

    @property
    def record_id(self) -> Any:
        row = self.new if self.new is not None else self.old
        return row.get("id") if row else None


class Channel:
    """Handle returned by ChangeFeed.subscribe()."""

    def __init__(self, feed: "ChangeFeed", table: str, user_id: int, callback: Callable[[ChangeEvent], None]):
        self.feed = feed
        self.table = table
        self.user_id = user_id
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.feed._remove(self)


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._channels: dict[tuple[str, int], list[Channel]] = {}

    def subscribe(self, table: str, user_id: int, callback: Callable[[ChangeEvent], None]) -> Channel:
        channel = Channel(self, table, user_id, callback)
        with self._lock:
            self._channels.setdefault((table, user_id), []).append(channel)
        logger.debug("Change feed: subscribed table=%s user_id=%s", table, user_id)
        return channel

    def _remove(self, channel: Channel) -> None:
        with self._lock:
            channels = self._channels.get((channel.table, channel.user_id), [])
            if channel in channels:
                channels.remove(channel)
            if not channels:
                self._channels.pop((channel.table, channel.user_id), None)

    def subscriber_count(self, table: str, user_id: int) -> int:
        with self._lock:
            return len(self._channels.get((table, user_id), []))

    def publish(self, table: str, user_id: int, event: ChangeEvent) -> int:
        """
        Deliver an event to every channel listening on (table, user_id).

        A failing subscriber is logged and skipped; the write that produced
        the event has already been committed.

        Returns number of channels the event was delivered to.
        """
        with self._lock:
            channels = list(self._channels.get((table, user_id), []))

        delivered = 0
        for channel in channels:
            if not channel.active:
                continue
            try:
                channel.callback(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Change feed subscriber failed: table=%s user_id=%s event=%s",
                    table, user_id, event.event_type,
                )
        return delivered
