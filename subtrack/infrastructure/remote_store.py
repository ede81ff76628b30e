"""
Remote store — owner-scoped row CRUD over the backend tables.

Rows cross this boundary as plain dicts, the way the backend's REST API
returns them. Every successful write is committed first and then published
on the change feed, so subscribers only ever see committed rows.
"""
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from subtrack.infrastructure.db.models import (
    SubscriptionModel, CategoryModel, NotificationModel, ProfileModel,
)
from subtrack.infrastructure.realtime import (
    ChangeFeed, ChangeEvent, EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE,
)

logger = logging.getLogger(__name__)

TABLES = {
    "subscriptions": SubscriptionModel,
    "categories": CategoryModel,
    "notifications": NotificationModel,
    "profiles": ProfileModel,
}


class RemoteStoreError(RuntimeError):
    pass


class RowNotFoundError(RemoteStoreError):
    pass


def row_to_dict(obj) -> dict[str, Any]:
    return {col.name: getattr(obj, col.name) for col in obj.__table__.columns}


class RemoteStore:
    """
    Usage:
        >>> store = RemoteStore(get_session_factory(), feed)
        >>> row = store.insert("categories", user_id=1, values={"name": "Video", "budget": 30})
        >>> store.select("categories", user_id=1, order_by="name")
        [{'id': '...', 'name': 'Video', ...}]
    """

    def __init__(self, session_factory: sessionmaker, feed: ChangeFeed | None = None):
        self.session_factory = session_factory
        self.feed = feed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _model(table: str):
        model = TABLES.get(table)
        if model is None:
            raise RemoteStoreError(f"Unknown table: {table}")
        return model

    @staticmethod
    def _check_columns(model, values: dict[str, Any]) -> None:
        columns = set(model.__table__.columns.keys())
        unknown = set(values) - columns
        if unknown:
            raise RemoteStoreError(
                f"Unknown column(s) for {model.__tablename__}: {', '.join(sorted(unknown))}"
            )

    def _scoped(self, db: Session, model, user_id: int, filters: dict[str, Any] | None = None):
        query = db.query(model).filter(model.user_id == user_id)
        for column, value in (filters or {}).items():
            query = query.filter(getattr(model, column) == value)
        return query

    def _publish(self, table: str, user_id: int, event_type: str, new=None, old=None) -> None:
        if self.feed is None:
            return
        self.feed.publish(table, user_id, ChangeEvent(event_type=event_type, table=table, new=new, old=old))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        user_id: int,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """
        select * from <table> where user_id = <user> [and <col> = <val> ...] order by <column>
        """
        model = self._model(table)
        self._check_columns(model, filters or {})
        try:
            with self.session_factory() as db:
                query = self._scoped(db, model, user_id, filters)
                if order_by:
                    self._check_columns(model, {order_by: None})
                    column = getattr(model, order_by)
                    query = query.order_by(column.desc() if descending else column.asc())
                return [row_to_dict(obj) for obj in query.all()]
        except SQLAlchemyError as e:
            logger.error("Select failed: table=%s user_id=%s: %s", table, user_id, e)
            raise RemoteStoreError(f"Failed to fetch {table}") from e

    def get(self, table: str, user_id: int, row_id: str) -> dict[str, Any] | None:
        rows = self.select(table, user_id, filters={"id": row_id})
        return rows[0] if rows else None

    def get_one(self, table: str, user_id: int, filters: dict[str, Any]) -> dict[str, Any] | None:
        rows = self.select(table, user_id, filters=filters)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, table: str, user_id: int, values: dict[str, Any]) -> dict[str, Any]:
        model = self._model(table)
        self._check_columns(model, values)
        try:
            with self.session_factory() as db:
                obj = model(**{**values, "user_id": user_id})
                db.add(obj)
                db.commit()
                db.refresh(obj)
                row = row_to_dict(obj)
        except SQLAlchemyError as e:
            logger.error("Insert failed: table=%s user_id=%s: %s", table, user_id, e)
            raise RemoteStoreError(f"Failed to insert into {table}") from e

        self._publish(table, user_id, EVENT_INSERT, new=row)
        return row

    def update(self, table: str, user_id: int, row_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        rows = self._update(table, user_id, {"id": row_id}, changes)
        if not rows:
            raise RowNotFoundError(f"{table} row not found: {row_id}")
        return rows[0]

    def update_where(
        self, table: str, user_id: int, changes: dict[str, Any], filters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        return self._update(table, user_id, filters or {}, changes)

    def _update(self, table: str, user_id: int, filters: dict[str, Any], changes: dict[str, Any]) -> list[dict]:
        model = self._model(table)
        self._check_columns(model, changes)
        self._check_columns(model, filters)
        changes = {k: v for k, v in changes.items() if k not in ("id", "user_id")}
        written: list[tuple[dict, dict]] = []
        try:
            with self.session_factory() as db:
                objs = self._scoped(db, model, user_id, filters).all()
                for obj in objs:
                    old = row_to_dict(obj)
                    for key, value in changes.items():
                        setattr(obj, key, value)
                    if "updated_at" in old and "updated_at" not in changes:
                        obj.updated_at = datetime.now(timezone.utc)
                    written.append((old, obj))
                db.commit()
                written = [(old, row_to_dict(obj)) for old, obj in written]
        except SQLAlchemyError as e:
            logger.error("Update failed: table=%s user_id=%s: %s", table, user_id, e)
            raise RemoteStoreError(f"Failed to update {table}") from e

        for old, new in written:
            self._publish(table, user_id, EVENT_UPDATE, new=new, old=old)
        return [new for _, new in written]

    def delete(self, table: str, user_id: int, row_id: str) -> dict[str, Any]:
        rows = self.delete_where(table, user_id, {"id": row_id})
        if not rows:
            raise RowNotFoundError(f"{table} row not found: {row_id}")
        return rows[0]

    def delete_where(self, table: str, user_id: int, filters: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        model = self._model(table)
        self._check_columns(model, filters or {})
        try:
            with self.session_factory() as db:
                objs = self._scoped(db, model, user_id, filters).all()
                removed = [row_to_dict(obj) for obj in objs]
                for obj in objs:
                    db.delete(obj)
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Delete failed: table=%s user_id=%s: %s", table, user_id, e)
            raise RemoteStoreError(f"Failed to delete from {table}") from e

        for old in removed:
            self._publish(table, user_id, EVENT_DELETE, old=old)
        return removed
