"""
Remote-sync state container — one per entity collection.

State machine:
    uninitialized ──start(user)──▶ loading ──fetch ok──▶ ready
                                      │
                                      └──fetch failed──▶ error ──refresh()──▶ loading
    any ──stop()──▶ uninitialized

Every mutation is an action put on the container's mailbox and applied by a
pure reducer under the container's lock (single writer per collection).
Change-feed events are applied directly once ready:

    INSERT  insert in sort order (an id already held is replaced)
    UPDATE  replace by id; an id not held yet is only remembered
    DELETE  remove by id, no-op if the id is not held

Events may arrive in any order and more than once. Three extra rules keep the
collection convergent: a deleted id is remembered (tombstone) so a late echo
cannot bring it back, a row older than the copy already held (by
updated_at) is ignored, and an UPDATE that overtakes its INSERT is kept
aside so the newer of the two rows wins when the INSERT lands. Events
received while loading are buffered and replayed on top of the fetched rows.
"""
import logging
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Generic, TypeVar

from subtrack.infrastructure.realtime import (
    ChangeFeed, ChangeEvent, Channel, EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE,
)
from subtrack.infrastructure.remote_store import RemoteStore, RemoteStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNINITIALIZED = "uninitialized"
LOADING = "loading"
READY = "ready"
ERROR = "error"


# ---------------------------------------------------------------------------
# State & actions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CollectionState(Generic[T]):
    status: str = UNINITIALIZED
    items: tuple = ()
    error: str | None = None
    generation: int = 0
    pending: tuple = ()
    tombstones: frozenset = field(default_factory=frozenset)
    early_updates: tuple = ()

    def ids(self) -> list:
        return [item.id for item in self.items]


@dataclass(frozen=True)
class Started:
    generation: int


@dataclass(frozen=True)
class FetchSucceeded:
    items: tuple
    generation: int


@dataclass(frozen=True)
class FetchFailed:
    message: str
    generation: int


@dataclass(frozen=True)
class ChangeReceived:
    event: ChangeEvent


@dataclass(frozen=True)
class Reset:
    generation: int


# ---------------------------------------------------------------------------
# Sort keys
# ---------------------------------------------------------------------------

def naive_utc(value: datetime | None) -> datetime:
    """Comparable form of a timestamp (SQLite hands back naive values)."""
    if value is None:
        return datetime.min
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def by_name(item) -> Any:
    return (item.name.lower(), item.id)


def by_created_at(item) -> Any:
    return (naive_utc(item.created_at), item.id)


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------

class CollectionReducer:
    """Pure (state, action) → state. Returns the same object when nothing changed."""

    def __init__(self, parse: Callable[[dict], Any], sort_key: Callable[[Any], Any], descending: bool = False):
        self.parse = parse
        self.sort_key = sort_key
        self.descending = descending

    def __call__(self, state: CollectionState, action) -> CollectionState:
        if isinstance(action, Started):
            return CollectionState(status=LOADING, generation=action.generation)

        if isinstance(action, Reset):
            return CollectionState(status=UNINITIALIZED, generation=action.generation)

        if isinstance(action, FetchSucceeded):
            if action.generation != state.generation or state.status not in (LOADING, READY):
                return state  # stale fetch from a previous sign-in
            fresh = CollectionState(
                status=READY,
                items=self._sorted(action.items),
                generation=state.generation,
            )
            for event in state.pending:
                fresh = self._apply(fresh, event)
            return fresh

        if isinstance(action, FetchFailed):
            if action.generation != state.generation or state.status not in (LOADING, READY):
                return state
            return CollectionState(status=ERROR, error=action.message, generation=state.generation)

        if isinstance(action, ChangeReceived):
            if state.status == LOADING:
                return replace(state, pending=state.pending + (action.event,))
            if state.status == READY:
                return self._apply(state, action.event)
            return state

        raise TypeError(f"Unknown action: {action!r}")

    def _sorted(self, items) -> tuple:
        return tuple(sorted(items, key=self.sort_key, reverse=self.descending))

    @staticmethod
    def _is_stale(held, incoming) -> bool:
        held_at = getattr(held, "updated_at", None)
        incoming_at = getattr(incoming, "updated_at", None)
        if held_at is None or incoming_at is None:
            return False
        return naive_utc(incoming_at) < naive_utc(held_at)

    def _apply(self, state: CollectionState, event: ChangeEvent) -> CollectionState:
        if event.event_type == EVENT_DELETE:
            record_id = event.record_id
            if record_id is None:
                return state
            record_id = str(record_id)
            items = tuple(item for item in state.items if item.id != record_id)
            return replace(state, items=items, tombstones=state.tombstones | {record_id})

        if event.event_type not in (EVENT_INSERT, EVENT_UPDATE) or not event.new:
            return state

        incoming = self.parse(event.new)
        if incoming.id in state.tombstones:
            return state

        held = next((item for item in state.items if item.id == incoming.id), None)
        if held is None:
            early = next((item for item in state.early_updates if item.id == incoming.id), None)
            others = tuple(item for item in state.early_updates if item.id != incoming.id)
            if early is not None and self._is_stale(early, incoming):
                incoming = early
            if event.event_type == EVENT_UPDATE:
                # not visible until its INSERT arrives
                if incoming is early:
                    return state
                return replace(state, early_updates=others + (incoming,))
            return replace(
                state, items=self._sorted(state.items + (incoming,)), early_updates=others,
            )

        if self._is_stale(held, incoming) or held == incoming:
            return state
        items = tuple(incoming if item.id == incoming.id else item for item in state.items)
        return replace(state, items=self._sorted(items))


# ---------------------------------------------------------------------------
# Container
# ---------------------------------------------------------------------------

class SyncedCollection(Generic[T]):
    """
    Mirror of one backend table for one user.

    Usage:
        >>> subs = SyncedCollection("subscriptions", store, feed, Subscription.from_row, by_name)
        >>> subs.start(user_id=1)
        >>> subs.status, len(subs.items)
        ('ready', 3)
        >>> subs.stop()
    """

    def __init__(
        self,
        table: str,
        store: RemoteStore,
        feed: ChangeFeed,
        parse: Callable[[dict], T],
        sort_key: Callable[[T], Any] = by_name,
        descending: bool = False,
        order_by: str | None = None,
        resync_on: frozenset[str] = frozenset(),
    ):
        self.table = table
        self.store = store
        self.feed = feed
        self.order_by = order_by
        self.descending = descending
        self.resync_on = resync_on
        self._reducer = CollectionReducer(parse, sort_key, descending)
        self._parse = parse
        self._state: CollectionState = CollectionState()
        self._mailbox: deque = deque()
        self._lock = threading.RLock()
        self._draining = False
        self._generation = 0
        self._channel: Channel | None = None
        self._user_id: int | None = None
        self._listeners: list[Callable[[CollectionState], None]] = []

    # -- read side -----------------------------------------------------

    @property
    def state(self) -> CollectionState:
        return self._state

    @property
    def status(self) -> str:
        return self._state.status

    @property
    def items(self) -> list[T]:
        return list(self._state.items)

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def user_id(self) -> int | None:
        return self._user_id

    @property
    def is_ready(self) -> bool:
        return self._state.status == READY

    def add_listener(self, callback: Callable[[CollectionState], None]) -> Callable[[], None]:
        """Register a state-change callback; returns a function that removes it."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    # -- lifecycle -----------------------------------------------------

    def start(self, user_id: int) -> None:
        """Owning user became available: subscribe to the feed, then bulk fetch."""
        with self._lock:
            if self._user_id == user_id and self._state.status in (LOADING, READY):
                return
            if self._user_id is not None:
                self._teardown()
            self._user_id = user_id
            self._generation += 1
            generation = self._generation
            self._channel = self.feed.subscribe(self.table, user_id, self._on_change)
        self.dispatch(Started(generation))
        self._fetch(user_id, generation)

    def refresh(self) -> None:
        """Re-run the bulk fetch (manual retry from error, or resync when ready)."""
        with self._lock:
            user_id = self._user_id
            generation = self._generation
        if user_id is None:
            return
        if self._state.status in (ERROR, UNINITIALIZED):
            self.dispatch(Started(generation))
        self._fetch(user_id, generation)

    def stop(self) -> None:
        """Owning user went away: tear down the feed, clear the collection."""
        with self._lock:
            self._teardown()
        self._listeners.clear()

    def _teardown(self) -> None:
        if self._channel is not None:
            self._channel.unsubscribe()
            self._channel = None
        self._user_id = None
        self._generation += 1
        self.dispatch(Reset(self._generation))

    # -- write side ----------------------------------------------------

    def dispatch(self, action) -> None:
        self._mailbox.append(action)
        self._drain()

    def _drain(self) -> None:
        with self._lock:
            if self._draining:
                return
            self._draining = True
            changed = False
            try:
                while self._mailbox:
                    action = self._mailbox.popleft()
                    new_state = self._reducer(self._state, action)
                    if new_state is not self._state:
                        self._state = new_state
                        changed = True
            finally:
                self._draining = False
            if changed:
                self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self._state)
            except Exception:
                logger.exception("Listener failed for %s", self.table)

    def _fetch(self, user_id: int, generation: int) -> None:
        try:
            rows = self.store.select(
                self.table, user_id, order_by=self.order_by, descending=self.descending,
            )
            items = tuple(self._parse(row) for row in rows)
        except RemoteStoreError as e:
            logger.error("Bulk fetch of %s failed for user_id=%s: %s", self.table, user_id, e)
            self.dispatch(FetchFailed(f"Failed to fetch {self.table}", generation))
            return
        self.dispatch(FetchSucceeded(items, generation))

    def _on_change(self, event: ChangeEvent) -> None:
        self.dispatch(ChangeReceived(event))
        if event.event_type in self.resync_on and self._state.status == READY:
            self.refresh()
