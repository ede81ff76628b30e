"""
Notification Engine — rule-based in-app notifications with idempotent emission.

Architecture:
- _TEMPLATES: title/message templates per rule code
- Rule functions: <rule>_triggers(): pure, records in → NotificationTrigger list out
- NotificationEngine: one per signed-in user; skips dedup keys already known
  (persisted or emitted this session) and writes the rest to the remote store
- run_daily_evaluation(): scheduler entry point, evaluates every user once a day
"""
import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable

from subtrack.domain.billing import CYCLE_YEARLY, days_between
from subtrack.domain.records import (
    Subscription, Category, Notification, dedup_key,
    NOTIFICATION_PAYMENT, NOTIFICATION_RENEWAL, NOTIFICATION_BUDGET, NOTIFICATION_CANCELLATION,
)
from subtrack.application.budget import (
    evaluate_budgets, WARNING_THRESHOLD, DANGER_THRESHOLD,
)
from subtrack.infrastructure.remote_store import RemoteStore, RemoteStoreError
from subtrack.utils.money import format_money

logger = logging.getLogger(__name__)

RENEWAL_WINDOW_DAYS = 7

# ---------------------------------------------------------------------------
# Message templates
# ---------------------------------------------------------------------------

_TEMPLATES: dict[str, dict] = {
    "PAYMENT_DUE": {
        "type": NOTIFICATION_PAYMENT,
        "title": "Upcoming Payment",
        "message": "Payment of {amount} for {name} is due in {days} days",
    },
    "ANNUAL_RENEWAL": {
        "type": NOTIFICATION_RENEWAL,
        "title": "Annual Renewal",
        "message": "{name} subscription will renew automatically in {days} days",
    },
    "BUDGET_APPROACHING": {
        "type": NOTIFICATION_BUDGET,
        "title": "Budget Alert",
        "message": "{name} category is approaching its monthly budget limit",
    },
    "BUDGET_EXCEEDED": {
        "type": NOTIFICATION_BUDGET,
        "title": "Budget Alert",
        "message": "{name} category has exceeded its monthly budget",
    },
    "SUBSCRIPTION_CANCELLED": {
        "type": NOTIFICATION_CANCELLATION,
        "title": "Subscription Cancelled: {name}",
        "message": "Your subscription to {name} has been cancelled. The service will end {end}.",
    },
}


@dataclass(frozen=True)
class NotificationTrigger:
    type: str
    dedup_key: str
    title: str
    message: str
    related_id: str | None = None

    def to_row(self) -> dict:
        return {
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "related_id": self.related_id,
            "dedup_key": self.dedup_key,
            "is_read": False,
        }


def _render(rule_code: str, related_id: str | None, bucket, related_key=None, **ctx) -> NotificationTrigger:
    tmpl = _TEMPLATES[rule_code]
    return NotificationTrigger(
        type=tmpl["type"],
        dedup_key=dedup_key(tmpl["type"], related_key if related_key is not None else related_id, bucket),
        title=tmpl["title"].format(**ctx),
        message=tmpl["message"].format(**ctx),
        related_id=related_id,
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def payment_due_triggers(subscriptions: Iterable[Subscription], today: date) -> list[NotificationTrigger]:
    """PAYMENT_DUE: active subscription billed within its own reminder window (today excluded)."""
    triggers = []
    for sub in subscriptions:
        if not sub.is_active or sub.next_billing_date is None:
            continue
        days = days_between(today, sub.next_billing_date)
        if 0 < days <= sub.reminder_days:
            triggers.append(_render(
                "PAYMENT_DUE", sub.id, days,
                name=sub.name, amount=format_money(sub.amount), days=days,
            ))
    return triggers


def renewal_triggers(subscriptions: Iterable[Subscription], today: date) -> list[NotificationTrigger]:
    """ANNUAL_RENEWAL: active yearly subscription renewing within RENEWAL_WINDOW_DAYS."""
    triggers = []
    for sub in subscriptions:
        if not sub.is_active or sub.billing_cycle != CYCLE_YEARLY or sub.next_billing_date is None:
            continue
        days = days_between(today, sub.next_billing_date)
        if 0 <= days <= RENEWAL_WINDOW_DAYS:
            triggers.append(_render("ANNUAL_RENEWAL", sub.id, days, name=sub.name, days=days))
    return triggers


def budget_triggers(
    subscriptions: Iterable[Subscription], categories: Iterable[Category],
) -> list[NotificationTrigger]:
    """BUDGET_*: category at 90 % or more of its budget. Bucketed by whole percent."""
    triggers = []
    for status in evaluate_budgets(subscriptions, categories):
        pct = status.percentage_used
        if pct < WARNING_THRESHOLD:
            continue
        rule_code = "BUDGET_EXCEEDED" if pct >= DANGER_THRESHOLD else "BUDGET_APPROACHING"
        triggers.append(_render(
            rule_code, status.category_id, math.floor(pct),
            related_key=status.name, name=status.name,
        ))
    return triggers


def cancellation_trigger(subscription: Subscription, today: date) -> NotificationTrigger:
    if subscription.next_billing_date is not None:
        end = f"on {subscription.next_billing_date.isoformat()}"
    else:
        end = "at the end of the billing period"
    return _render(
        "SUBSCRIPTION_CANCELLED", subscription.id, today.isoformat(),
        name=subscription.name, end=end,
    )


def evaluate_triggers(
    subscriptions: Iterable[Subscription], categories: Iterable[Category], today: date,
) -> list[NotificationTrigger]:
    subscriptions = list(subscriptions)
    return (
        payment_due_triggers(subscriptions, today)
        + renewal_triggers(subscriptions, today)
        + budget_triggers(subscriptions, categories)
    )


# ---------------------------------------------------------------------------
# Main engine
# ---------------------------------------------------------------------------

class NotificationEngine:
    """
    Emits each trigger at most once per dedup key.

    known_keys returns the keys of notifications already persisted (normally
    read from the user's notification collection); keys emitted by this
    engine instance are remembered on top of that.
    """

    def __init__(
        self,
        store: RemoteStore,
        user_id: int,
        known_keys: Callable[[], Iterable[str]] | None = None,
    ):
        self.store = store
        self.user_id = user_id
        self._known_keys = known_keys or (lambda: ())
        self._emitted: set[str] = set()

    def is_known(self, key: str) -> bool:
        return key in self._emitted or key in set(self._known_keys())

    def run(
        self, subscriptions: Iterable[Subscription], categories: Iterable[Category], today: date | None = None,
    ) -> list[Notification]:
        """Evaluate every rule and create notifications for new keys."""
        today = today or date.today()
        return self.emit_all(evaluate_triggers(subscriptions, categories, today))

    def notify_cancellation(self, subscription: Subscription, today: date | None = None) -> Notification | None:
        today = today or date.today()
        return self.emit(cancellation_trigger(subscription, today))

    def emit_all(self, triggers: Iterable[NotificationTrigger]) -> list[Notification]:
        known = set(self._known_keys()) | self._emitted
        created = []
        for trigger in triggers:
            if trigger.dedup_key in known:
                continue
            notification = self._create(trigger)
            if notification is not None:
                known.add(trigger.dedup_key)
                created.append(notification)
        return created

    def emit(self, trigger: NotificationTrigger) -> Notification | None:
        if self.is_known(trigger.dedup_key):
            return None
        return self._create(trigger)

    def _create(self, trigger: NotificationTrigger) -> Notification | None:
        try:
            row = self.store.insert("notifications", self.user_id, trigger.to_row())
        except RemoteStoreError:
            logger.exception(
                "Notification creation failed: user_id=%s key=%s", self.user_id, trigger.dedup_key,
            )
            return None
        self._emitted.add(trigger.dedup_key)
        logger.info("Notification created: user_id=%s key=%s", self.user_id, trigger.dedup_key)
        return Notification.from_row(row)


# ---------------------------------------------------------------------------
# Scheduled evaluation
# ---------------------------------------------------------------------------

def run_for_user(store: RemoteStore, user_id: int, today: date) -> list[Notification]:
    """Evaluate one user's rules straight from the store (no workspace needed)."""
    subscriptions = [Subscription.from_row(r) for r in store.select("subscriptions", user_id)]
    categories = [Category.from_row(r) for r in store.select("categories", user_id)]
    persisted = {
        r["dedup_key"] for r in store.select("notifications", user_id) if r.get("dedup_key")
    }
    engine = NotificationEngine(store, user_id, known_keys=lambda: persisted)
    return engine.run(subscriptions, categories, today)


def run_daily_evaluation(store: RemoteStore, user_ids: Iterable[int], today: date | None = None) -> int:
    """Returns the number of notifications created across all users."""
    today = today or date.today()
    created = 0
    for user_id in user_ids:
        try:
            created += len(run_for_user(store, user_id, today))
        except RemoteStoreError:
            logger.exception("Daily notification evaluation failed for user_id=%s", user_id)
    logger.info("Daily notification evaluation done: %s created", created)
    return created
