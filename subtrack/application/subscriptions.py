"""
Subscription use cases — create, edit, status toggle, delete.

Writes go through the remote store; the user's synced collections pick the
result up from the change feed. Switching a subscription from active to
inactive emits a cancellation notification when a notifier is supplied.
"""
import logging
from datetime import date
from typing import Any, Protocol

from subtrack.domain.billing import BILLING_CYCLES, CYCLE_MONTHLY, as_date, payment_history, roll_forward
from subtrack.domain.records import (
    Subscription, SUBSCRIPTION_STATUSES, STATUS_ACTIVE, STATUS_INACTIVE, DEFAULT_REMINDER_DAYS,
)
from subtrack.infrastructure.remote_store import RemoteStore, RowNotFoundError
from subtrack.utils.validation import parse_amount

logger = logging.getLogger(__name__)

TABLE = "subscriptions"
MIN_REMINDER_DAYS = 1
MAX_REMINDER_DAYS = 30


class SubscriptionValidationError(ValueError):
    pass


class CancellationNotifier(Protocol):
    def notify_cancellation(self, subscription: Subscription, today: date | None = None) -> Any: ...


# ============================================================================
# Field validation
# ============================================================================


def _clean_name(value) -> str:
    name = (value or "").strip()
    if not name:
        raise SubscriptionValidationError("Name cannot be empty")
    return name


def _clean_amount(value):
    try:
        return parse_amount(value)
    except ValueError as e:
        raise SubscriptionValidationError(str(e)) from e


def _clean_cycle(value) -> str:
    cycle = (value or "").strip().lower()
    if cycle not in BILLING_CYCLES:
        raise SubscriptionValidationError(
            f"billing_cycle must be one of {', '.join(BILLING_CYCLES)}, got: {value}"
        )
    return cycle


def _clean_status(value) -> str:
    if value not in SUBSCRIPTION_STATUSES:
        raise SubscriptionValidationError(f"status must be active or inactive, got: {value}")
    return value


def _clean_date(value) -> date:
    parsed = as_date(value)
    if parsed is None:
        raise SubscriptionValidationError("next_billing_date must be a date (YYYY-MM-DD)")
    return parsed


def _clean_reminder_days(value) -> int:
    try:
        days = int(value)
    except (TypeError, ValueError):
        raise SubscriptionValidationError("reminder_days must be a whole number")
    if not MIN_REMINDER_DAYS <= days <= MAX_REMINDER_DAYS:
        raise SubscriptionValidationError(
            f"reminder_days must be between {MIN_REMINDER_DAYS} and {MAX_REMINDER_DAYS}"
        )
    return days


def _clean_category(store: RemoteStore, user_id: int, category_id) -> str | None:
    if not category_id:
        return None
    if store.get("categories", user_id, category_id) is None:
        raise SubscriptionValidationError("Category not found")
    return category_id


_CLEANERS = {
    "name": _clean_name,
    "amount": _clean_amount,
    "billing_cycle": _clean_cycle,
    "status": _clean_status,
    "next_billing_date": _clean_date,
    "reminder_days": _clean_reminder_days,
}


# ============================================================================
# Use cases
# ============================================================================


class CreateSubscriptionUseCase:
    def __init__(self, store: RemoteStore):
        self.store = store

    def execute(
        self,
        user_id: int,
        name: str,
        amount,
        next_billing_date,
        billing_cycle: str = CYCLE_MONTHLY,
        category_id: str | None = None,
        reminder_days: int = DEFAULT_REMINDER_DAYS,
        description: str | None = None,
    ) -> Subscription:
        values = {
            "name": _clean_name(name),
            "amount": _clean_amount(amount),
            "billing_cycle": _clean_cycle(billing_cycle),
            "next_billing_date": _clean_date(next_billing_date),
            "reminder_days": _clean_reminder_days(reminder_days),
            "category_id": _clean_category(self.store, user_id, category_id),
            "description": (description or "").strip() or None,
            # New subscriptions always start active
            "status": STATUS_ACTIVE,
        }
        row = self.store.insert(TABLE, user_id, values)
        logger.info("Subscription created: user_id=%s id=%s", user_id, row["id"])
        return Subscription.from_row(row)


class UpdateSubscriptionUseCase:
    def __init__(self, store: RemoteStore, notifier: CancellationNotifier | None = None):
        self.store = store
        self.notifier = notifier

    def execute(self, subscription_id: str, user_id: int, **changes) -> Subscription:
        current_row = self.store.get(TABLE, user_id, subscription_id)
        if current_row is None:
            raise RowNotFoundError(f"Subscription not found: {subscription_id}")
        current = Subscription.from_row(current_row)

        values: dict[str, Any] = {}
        for field, value in changes.items():
            if field in _CLEANERS:
                values[field] = _CLEANERS[field](value)
            elif field == "category_id":
                values[field] = _clean_category(self.store, user_id, value)
            elif field == "description":
                values[field] = (value or "").strip() or None
            else:
                raise SubscriptionValidationError(f"Unknown field: {field}")

        if not values:
            return current

        row = self.store.update(TABLE, user_id, subscription_id, values)
        updated = Subscription.from_row(row)
        if current.is_active and not updated.is_active:
            self._notify_cancelled(updated)
        return updated

    def _notify_cancelled(self, subscription: Subscription) -> None:
        if self.notifier is None:
            return
        self.notifier.notify_cancellation(subscription)


class ToggleSubscriptionStatusUseCase:
    def __init__(self, store: RemoteStore, notifier: CancellationNotifier | None = None):
        self.update = UpdateSubscriptionUseCase(store, notifier)
        self.store = store

    def execute(self, subscription_id: str, user_id: int) -> Subscription:
        row = self.store.get(TABLE, user_id, subscription_id)
        if row is None:
            raise RowNotFoundError(f"Subscription not found: {subscription_id}")
        status = STATUS_INACTIVE if row.get("status") == STATUS_ACTIVE else STATUS_ACTIVE
        return self.update.execute(subscription_id, user_id, status=status)


class DeleteSubscriptionUseCase:
    def __init__(self, store: RemoteStore):
        self.store = store

    def execute(self, subscription_id: str, user_id: int) -> None:
        self.store.delete(TABLE, user_id, subscription_id)
        logger.info("Subscription deleted: user_id=%s id=%s", user_id, subscription_id)


class RollForwardBillingDatesUseCase:
    """
    Move past-due next_billing_date of active subscriptions to the first
    charge date on or after today. Inactive subscriptions keep their date.

    Returns the number of subscriptions moved.
    """

    def __init__(self, store: RemoteStore):
        self.store = store

    def execute(self, user_id: int, today: date) -> int:
        moved = 0
        for row in self.store.select(TABLE, user_id, filters={"status": STATUS_ACTIVE}):
            sub = Subscription.from_row(row)
            if sub.next_billing_date is None or sub.next_billing_date >= today:
                continue
            next_date = roll_forward(sub.next_billing_date, sub.billing_cycle, today)
            self.store.update(TABLE, user_id, sub.id, {"next_billing_date": next_date})
            moved += 1
        if moved:
            logger.info("Billing dates rolled forward: user_id=%s count=%s", user_id, moved)
        return moved


def subscription_payment_history(subscription: Subscription, today: date) -> list[dict]:
    """Past charges from the subscription's creation date up to today."""
    if subscription.created_at is None:
        return []
    return payment_history(
        subscription.created_at.date(), subscription.billing_cycle, subscription.amount, today,
    )
