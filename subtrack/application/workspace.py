"""
Per-user workspace — everything that lives between sign-in and sign-out.

A workspace owns the user's three synced collections, the notification store
and the notification engine. Subscription or category changes re-run the
engine once both collections are ready. The registry keeps one workspace per
signed-in user; closing a workspace unsubscribes its change feeds and drops
its state.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable
from zoneinfo import ZoneInfo

from subtrack.config import get_settings
from subtrack.domain.records import Subscription, Category, Notification
from subtrack.application import spending
from subtrack.application.budget import (
    BudgetAlert, BudgetOverview, CategoryBudgetStatus, evaluate_budgets, budget_overview,
)
from subtrack.application.notification_engine import NotificationEngine
from subtrack.application.notifications import NotificationStore
from subtrack.application.sync import SyncedCollection, by_name, by_created_at
from subtrack.infrastructure.realtime import ChangeFeed, EVENT_UPDATE
from subtrack.infrastructure.remote_store import RemoteStore

logger = logging.getLogger(__name__)


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().TIMEZONE)).date()


# ---------------------------------------------------------------------------
# Dashboard view model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Dashboard:
    summary: spending.SpendingSummary
    budgets: list[CategoryBudgetStatus]
    alerts: list[BudgetAlert]
    overview: BudgetOverview
    upcoming: list[Subscription]
    due_soon: list[spending.DuePayment]
    category_stats: list[spending.CategoryStat]
    history: list[spending.MonthlySpend]
    trend: spending.SpendingTrend
    unread_notifications: int = 0


def build_dashboard(
    subscriptions: list[Subscription],
    categories: list[Category],
    today: date,
    window_days: int = spending.DEFAULT_UPCOMING_WINDOW_DAYS,
    unread_notifications: int = 0,
) -> Dashboard:
    budgets = evaluate_budgets(subscriptions, categories)
    return Dashboard(
        summary=spending.summarize(subscriptions, categories, today, window_days),
        budgets=budgets,
        alerts=[b.alert for b in budgets if b.alert is not None],
        overview=budget_overview(subscriptions, categories),
        upcoming=spending.upcoming_renewals(subscriptions, today, window_days),
        due_soon=spending.due_soon(subscriptions, today),
        category_stats=spending.category_stats(subscriptions, categories),
        history=spending.monthly_spending_history(subscriptions, today),
        trend=spending.spending_trend(subscriptions, today),
        unread_notifications=unread_notifications,
    )


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------

class UserWorkspace:
    def __init__(
        self,
        store: RemoteStore,
        feed: ChangeFeed,
        user_id: int,
        today: Callable[[], date] = local_today,
        window_days: int = spending.DEFAULT_UPCOMING_WINDOW_DAYS,
    ):
        self.store = store
        self.feed = feed
        self.user_id = user_id
        self.today = today
        self.window_days = window_days

        self.subscriptions: SyncedCollection[Subscription] = SyncedCollection(
            "subscriptions", store, feed, Subscription.from_row, by_name, order_by="name",
        )
        # Category edits re-fetch the whole list (renames change the sort order).
        self.categories: SyncedCollection[Category] = SyncedCollection(
            "categories", store, feed, Category.from_row, by_name, order_by="name",
            resync_on=frozenset({EVENT_UPDATE}),
        )
        self.notifications: SyncedCollection[Notification] = SyncedCollection(
            "notifications", store, feed, Notification.from_row, by_created_at,
            descending=True, order_by="created_at",
        )
        self.notification_store = NotificationStore(store, user_id, self.notifications)
        self.engine = NotificationEngine(store, user_id, known_keys=self.notification_store.known_keys)
        self.is_open = False

    def open(self) -> None:
        if self.is_open:
            return
        self.is_open = True
        # Notifications first, so persisted dedup keys are known before the first evaluation.
        self.notifications.start(self.user_id)
        self.subscriptions.add_listener(lambda _state: self.evaluate_notifications())
        self.categories.add_listener(lambda _state: self.evaluate_notifications())
        self.subscriptions.start(self.user_id)
        self.categories.start(self.user_id)
        logger.info("Workspace opened: user_id=%s", self.user_id)

    def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        for collection in (self.subscriptions, self.categories, self.notifications):
            collection.stop()
        logger.info("Workspace closed: user_id=%s", self.user_id)

    def refresh(self) -> None:
        for collection in (self.subscriptions, self.categories, self.notifications):
            collection.refresh()

    @property
    def is_ready(self) -> bool:
        return self.subscriptions.is_ready and self.categories.is_ready

    def evaluate_notifications(self) -> list[Notification]:
        if not self.is_open or not self.is_ready:
            return []
        return self.engine.run(self.subscriptions.items, self.categories.items, self.today())

    def dashboard(self) -> Dashboard:
        return build_dashboard(
            self.subscriptions.items,
            self.categories.items,
            self.today(),
            window_days=self.window_days,
            unread_notifications=self.notification_store.unread_count,
        )


class WorkspaceRegistry:
    """One open workspace per signed-in user."""

    def __init__(self, store: RemoteStore, feed: ChangeFeed, today: Callable[[], date] = local_today):
        self.store = store
        self.feed = feed
        self.today = today
        self._lock = threading.Lock()
        self._workspaces: dict[int, UserWorkspace] = {}

    def open(self, user_id: int) -> UserWorkspace:
        with self._lock:
            workspace = self._workspaces.get(user_id)
            if workspace is None:
                workspace = UserWorkspace(
                    self.store, self.feed, user_id,
                    today=self.today,
                    window_days=get_settings().UPCOMING_WINDOW_DAYS,
                )
                self._workspaces[user_id] = workspace
        workspace.open()
        return workspace

    def get(self, user_id: int) -> UserWorkspace | None:
        with self._lock:
            return self._workspaces.get(user_id)

    def close(self, user_id: int) -> None:
        with self._lock:
            workspace = self._workspaces.pop(user_id, None)
        if workspace is not None:
            workspace.close()

    def close_all(self) -> None:
        with self._lock:
            workspaces = list(self._workspaces.values())
            self._workspaces.clear()
        for workspace in workspaces:
            workspace.close()

    def __len__(self) -> int:
        return len(self._workspaces)
