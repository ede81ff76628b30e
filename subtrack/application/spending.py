"""
Spending aggregation — pure read-layer over the subscription collection.

No I/O, no mutations: every function folds the in-memory records handed to
it and is recomputed from scratch on each change.

Blocks:
  1. Totals (monthly spend, active/inactive counts)
  2. Per-category spend (tolerant join: unknown category ids only drop out of
     the breakdown, never out of the total)
  3. Upcoming renewals within a rolling window
  4. Six-month spending history and trend
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from subtrack.domain.billing import ZERO, add_months, days_between, last_day_of_month
from subtrack.domain.records import Subscription, Category

DEFAULT_UPCOMING_WINDOW_DAYS = 30
DUE_SOON_DAYS = 7
HISTORY_MONTHS = 6

_MONTH_ABBR = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


@dataclass(frozen=True)
class SpendingSummary:
    total_monthly_spend: Decimal
    per_category_spend: dict[str, Decimal]
    active_count: int
    inactive_count: int
    upcoming_renewal_count: int
    window_days: int = DEFAULT_UPCOMING_WINDOW_DAYS


@dataclass(frozen=True)
class CategoryStat:
    category_id: str
    name: str
    color: str | None
    spend: Decimal
    share: float  # % of categorized spend


@dataclass(frozen=True)
class MonthlySpend:
    year: int
    month: int
    amount: Decimal

    @property
    def label(self) -> str:
        return f"{_MONTH_ABBR[self.month - 1]} {self.year}"


@dataclass(frozen=True)
class SpendingTrend:
    percentage: float
    direction: str  # up | down | neutral


@dataclass(frozen=True)
class DuePayment:
    subscription: Subscription
    days_until: int


def _active(subscriptions: Iterable[Subscription]) -> list[Subscription]:
    return [s for s in subscriptions if s.is_active]


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------

def total_monthly_spend(subscriptions: Iterable[Subscription]) -> Decimal:
    return sum((s.monthly_amount for s in _active(subscriptions)), ZERO)


def active_count(subscriptions: Iterable[Subscription]) -> int:
    return len(_active(subscriptions))


def inactive_count(subscriptions: Iterable[Subscription]) -> int:
    return sum(1 for s in subscriptions if not s.is_active)


# ---------------------------------------------------------------------------
# Per category
# ---------------------------------------------------------------------------

def per_category_spend(
    subscriptions: Iterable[Subscription], categories: Iterable[Category],
) -> dict[str, Decimal]:
    """
    category id → monthly spend of its active subscriptions.

    Every known category is present (0 when nothing is attributed to it);
    subscriptions pointing at an unknown or missing category are skipped.
    """
    spend = {c.id: ZERO for c in categories}
    for sub in _active(subscriptions):
        if sub.category_id in spend:
            spend[sub.category_id] += sub.monthly_amount
    return spend


def category_stats(
    subscriptions: Iterable[Subscription], categories: Iterable[Category],
) -> list[CategoryStat]:
    categories = list(categories)
    spend = per_category_spend(subscriptions, categories)
    categorized_total = sum(spend.values(), ZERO)
    stats = [
        CategoryStat(
            category_id=c.id,
            name=c.name,
            color=c.color,
            spend=spend[c.id],
            share=float(spend[c.id] / categorized_total * 100) if categorized_total > 0 else 0.0,
        )
        for c in categories
    ]
    stats.sort(key=lambda s: (-s.spend, s.name))
    return stats


# ---------------------------------------------------------------------------
# Upcoming renewals
# ---------------------------------------------------------------------------

def _in_window(sub: Subscription, today: date, window_days: int) -> bool:
    if sub.next_billing_date is None:
        return False
    return 0 <= days_between(today, sub.next_billing_date) <= window_days


def upcoming_renewals(
    subscriptions: Iterable[Subscription], today: date, window_days: int = DEFAULT_UPCOMING_WINDOW_DAYS,
) -> list[Subscription]:
    """Active subscriptions billed within [today, today + window_days], soonest first."""
    upcoming = [s for s in _active(subscriptions) if _in_window(s, today, window_days)]
    upcoming.sort(key=lambda s: (s.next_billing_date, s.name))
    return upcoming


def upcoming_renewal_count(
    subscriptions: Iterable[Subscription], today: date, window_days: int = DEFAULT_UPCOMING_WINDOW_DAYS,
) -> int:
    return len(upcoming_renewals(subscriptions, today, window_days))


def due_soon(subscriptions: Iterable[Subscription], today: date, days: int = DUE_SOON_DAYS) -> list[DuePayment]:
    return [
        DuePayment(subscription=s, days_until=days_between(today, s.next_billing_date))
        for s in upcoming_renewals(subscriptions, today, days)
    ]


# ---------------------------------------------------------------------------
# History / trend
# ---------------------------------------------------------------------------

def _started_by(sub: Subscription, day: date) -> bool:
    return sub.created_at is None or sub.created_at.date() <= day


def monthly_spending_history(
    subscriptions: Iterable[Subscription], today: date, months: int = HISTORY_MONTHS,
) -> list[MonthlySpend]:
    """
    Monthly spend for the last `months` calendar months (oldest first).
    A subscription counts toward a month once it was created by that month's end.
    """
    active = _active(subscriptions)
    first_month = add_months(today.replace(day=1), -(months - 1))
    history = []
    for i in range(months):
        month_start = add_months(first_month, i)
        month_end = month_start.replace(day=last_day_of_month(month_start.year, month_start.month))
        amount = sum((s.monthly_amount for s in active if _started_by(s, month_end)), ZERO)
        history.append(MonthlySpend(year=month_start.year, month=month_start.month, amount=amount))
    return history


def spending_trend(subscriptions: Iterable[Subscription], today: date) -> SpendingTrend:
    """Current spend vs. spend of what already existed on the 1st of last month."""
    subscriptions = list(subscriptions)
    last_month = add_months(today.replace(day=1), -1)
    current = total_monthly_spend(subscriptions)
    previous = total_monthly_spend(s for s in subscriptions if _started_by(s, last_month))
    if previous == 0:
        return SpendingTrend(percentage=0.0, direction="neutral")

    change = float((current - previous) / previous * 100)
    if change > 0:
        direction = "up"
    elif change < 0:
        direction = "down"
    else:
        direction = "neutral"
    return SpendingTrend(percentage=abs(change), direction=direction)


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def summarize(
    subscriptions: Iterable[Subscription],
    categories: Iterable[Category],
    today: date,
    window_days: int = DEFAULT_UPCOMING_WINDOW_DAYS,
) -> SpendingSummary:
    subscriptions = list(subscriptions)
    return SpendingSummary(
        total_monthly_spend=total_monthly_spend(subscriptions),
        per_category_spend=per_category_spend(subscriptions, categories),
        active_count=active_count(subscriptions),
        inactive_count=inactive_count(subscriptions),
        upcoming_renewal_count=upcoming_renewal_count(subscriptions, today, window_days),
        window_days=window_days,
    )
