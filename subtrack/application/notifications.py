"""
Notification store — the signed-in user's notifications.

Reads come from the synced notification collection; writes go to the remote
store and come back through the change feed. A failed write raises
RemoteStoreError and leaves the collection untouched.
"""
import logging

from subtrack.domain.records import Notification
from subtrack.application.sync import SyncedCollection
from subtrack.infrastructure.remote_store import RemoteStore

logger = logging.getLogger(__name__)

TABLE = "notifications"


class NotificationStore:
    def __init__(self, store: RemoteStore, user_id: int, collection: SyncedCollection[Notification]):
        self.store = store
        self.user_id = user_id
        self.collection = collection

    @property
    def items(self) -> list[Notification]:
        return self.collection.items

    @property
    def unread(self) -> list[Notification]:
        return [n for n in self.items if not n.is_read]

    @property
    def unread_count(self) -> int:
        return len(self.unread)

    def known_keys(self) -> set[str]:
        return {n.dedup_key for n in self.items if n.dedup_key}

    def get(self, notification_id: str) -> Notification | None:
        return next((n for n in self.items if n.id == notification_id), None)

    def mark_read(self, notification_id: str) -> Notification:
        row = self.store.update(TABLE, self.user_id, notification_id, {"is_read": True})
        return Notification.from_row(row)

    def mark_all_read(self) -> int:
        rows = self.store.update_where(TABLE, self.user_id, {"is_read": True}, filters={"is_read": False})
        logger.info("Marked %s notifications read: user_id=%s", len(rows), self.user_id)
        return len(rows)

    def delete(self, notification_id: str) -> None:
        self.store.delete(TABLE, self.user_id, notification_id)

    def clear_all(self) -> int:
        rows = self.store.delete_where(TABLE, self.user_id)
        logger.info("Cleared %s notifications: user_id=%s", len(rows), self.user_id)
        return len(rows)
