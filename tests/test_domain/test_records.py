"""
Tests for typed row views
"""
from datetime import date, datetime, timezone
from decimal import Decimal

from subtrack.domain.records import (
    Subscription, Category, Notification, dedup_key, DEFAULT_REMINDER_DAYS,
)


def test_subscription_from_row_parses_types():
    sub = Subscription.from_row({
        "id": "s1",
        "user_id": 1,
        "name": "Netflix",
        "amount": "15.49",
        "billing_cycle": "Monthly",
        "category_id": "c1",
        "status": "active",
        "next_billing_date": "2026-03-15",
        "reminder_days": 3,
        "created_at": "2026-01-01T10:00:00+00:00",
    })
    assert sub.amount == Decimal("15.49")
    assert sub.billing_cycle == "monthly"
    assert sub.next_billing_date == date(2026, 3, 15)
    assert sub.reminder_days == 3
    assert sub.created_at == datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert sub.is_active


def test_subscription_from_row_is_tolerant():
    sub = Subscription.from_row({"id": 7, "amount": "oops", "next_billing_date": "soon"})
    assert sub.id == "7"
    assert sub.amount == 0
    assert sub.next_billing_date is None
    assert sub.reminder_days == DEFAULT_REMINDER_DAYS
    assert sub.status == "active"


def test_monthly_amount_uses_cycle():
    sub = Subscription.from_row({"id": "s", "amount": 120, "billing_cycle": "yearly"})
    assert sub.monthly_amount == Decimal("10")


def test_category_from_row():
    cat = Category.from_row({"id": "c", "name": "Video", "budget": "30.00", "color": "#FF0000"})
    assert cat.budget == Decimal("30.00")
    assert cat.color == "#FF0000"


def test_notification_from_row_defaults_unread():
    n = Notification.from_row({"id": "n", "title": "t", "message": "m", "type": "payment"})
    assert n.is_read is False
    assert n.dedup_key is None


def test_dedup_key_format():
    assert dedup_key("payment", "sub-1", 5) == "payment:sub-1:5"
    assert dedup_key("budget", "Entertainment", 95) == "budget:Entertainment:95"
