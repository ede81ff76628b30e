"""
Typed views of backend rows (subscriptions, categories, notifications).

Rows arrive as dicts from the bulk fetch and from change-feed events; the
state containers keep them as these immutable records. Parsing is tolerant:
a malformed amount becomes 0 and an unparsable date becomes None.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from subtrack.domain.billing import to_decimal, as_date, monthly_equivalent, CYCLE_MONTHLY

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
SUBSCRIPTION_STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE)

NOTIFICATION_PAYMENT = "payment"
NOTIFICATION_RENEWAL = "renewal"
NOTIFICATION_BUDGET = "budget"
NOTIFICATION_CANCELLATION = "cancellation"
NOTIFICATION_TYPES = (
    NOTIFICATION_PAYMENT, NOTIFICATION_RENEWAL, NOTIFICATION_BUDGET, NOTIFICATION_CANCELLATION,
)

DEFAULT_REMINDER_DAYS = 7


def as_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def as_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Subscription:
    id: str
    user_id: int | None
    name: str
    amount: Decimal
    billing_cycle: str
    category_id: str | None
    status: str
    next_billing_date: date | None
    reminder_days: int = DEFAULT_REMINDER_DAYS
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Subscription":
        return cls(
            id=str(row["id"]),
            user_id=row.get("user_id"),
            name=row.get("name") or "",
            amount=to_decimal(row.get("amount")),
            billing_cycle=(row.get("billing_cycle") or CYCLE_MONTHLY).lower(),
            category_id=row.get("category_id"),
            status=row.get("status") or STATUS_ACTIVE,
            next_billing_date=as_date(row.get("next_billing_date")),
            reminder_days=as_int(row.get("reminder_days"), DEFAULT_REMINDER_DAYS),
            description=row.get("description"),
            created_at=as_datetime(row.get("created_at")),
            updated_at=as_datetime(row.get("updated_at")),
        )

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def monthly_amount(self) -> Decimal:
        return monthly_equivalent(self.amount, self.billing_cycle)


@dataclass(frozen=True)
class Category:
    id: str
    user_id: int | None
    name: str
    budget: Decimal
    color: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Category":
        return cls(
            id=str(row["id"]),
            user_id=row.get("user_id"),
            name=row.get("name") or "",
            budget=to_decimal(row.get("budget")),
            color=row.get("color"),
            created_at=as_datetime(row.get("created_at")),
            updated_at=as_datetime(row.get("updated_at")),
        )


@dataclass(frozen=True)
class Notification:
    id: str
    user_id: int | None
    title: str
    message: str
    type: str
    is_read: bool = False
    related_id: str | None = None
    dedup_key: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Notification":
        return cls(
            id=str(row["id"]),
            user_id=row.get("user_id"),
            title=row.get("title") or "",
            message=row.get("message") or "",
            type=row.get("type") or "",
            is_read=bool(row.get("is_read", False)),
            related_id=row.get("related_id"),
            dedup_key=row.get("dedup_key"),
            created_at=as_datetime(row.get("created_at")),
            updated_at=as_datetime(row.get("updated_at")),
        )


def dedup_key(notification_type: str, related: Any, bucket: Any) -> str:
    """
    Deterministic identity of a trigger condition.

    Example:
        >>> dedup_key("payment", "sub-1", 5)
        'payment:sub-1:5'
    """
    return f"{notification_type}:{related}:{bucket}"
