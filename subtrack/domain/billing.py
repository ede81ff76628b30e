"""
Money/time normalization for recurring charges.

All calculations use date only (no timezone). Amounts are Decimal; anything
that is not a number degrades to 0 so aggregates stay available.

Billing cycles:
- weekly:    × WEEKS_PER_MONTH (average, not exact)
- monthly:   as is
- quarterly: / 3
- yearly:    / 12
"""
import calendar
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

CYCLE_WEEKLY = "weekly"
CYCLE_MONTHLY = "monthly"
CYCLE_QUARTERLY = "quarterly"
CYCLE_YEARLY = "yearly"
BILLING_CYCLES = (CYCLE_WEEKLY, CYCLE_MONTHLY, CYCLE_QUARTERLY, CYCLE_YEARLY)

WEEKS_PER_MONTH = Decimal("4.33")

_MONTHLY_DIVISOR = {
    CYCLE_MONTHLY: Decimal(1),
    CYCLE_QUARTERLY: Decimal(3),
    CYCLE_YEARLY: Decimal(12),
}

ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """
    Coerce a raw amount to Decimal. None, empty, non-numeric and non-finite
    values become 0.

    Example:
        >>> to_decimal("9.99")
        Decimal('9.99')
        >>> to_decimal("abc")
        Decimal('0')
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            text = str(value).strip()
            # "1,234.50" groups thousands; "1,50" uses a decimal comma
            text = text.replace(",", "") if "." in text else text.replace(",", ".")
            result = Decimal(text)
        except (InvalidOperation, ValueError):
            return ZERO
    if not result.is_finite():
        return ZERO
    return result


def monthly_equivalent(amount, cycle: str | None) -> Decimal:
    """
    Convert a charge to its per-month figure.

    Example:
        >>> monthly_equivalent(1200, "yearly")
        Decimal('100')
        >>> monthly_equivalent(25, "weekly")
        Decimal('108.25')
    """
    value = to_decimal(amount)
    cycle = (cycle or CYCLE_MONTHLY).lower()
    if cycle == CYCLE_WEEKLY:
        return value * WEEKS_PER_MONTH
    return value / _MONTHLY_DIVISOR.get(cycle, Decimal(1))


def as_date(value) -> date | None:
    """date / datetime / ISO string → date (time of day dropped)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def days_between(a, b) -> int:
    """Whole calendar days from a to b (negative if b is before a)."""
    return (as_date(b) - as_date(a)).days


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(d: date, n: int) -> date:
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    day = min(d.day, last_day_of_month(year, month))
    return date(year, month, day)


def advance_billing_date(d: date, cycle: str | None) -> date:
    """Next charge date after d for the given cycle (month-end clipped)."""
    cycle = (cycle or CYCLE_MONTHLY).lower()
    if cycle == CYCLE_WEEKLY:
        return d + timedelta(days=7)
    if cycle == CYCLE_QUARTERLY:
        return add_months(d, 3)
    if cycle == CYCLE_YEARLY:
        return add_months(d, 12)
    return add_months(d, 1)


def payment_history(start: date, cycle: str | None, amount, today: date) -> list[dict]:
    """
    Charges from start up to and including today, newest first.

    Each step is computed from the start date, so a 31st start keeps landing
    on month ends instead of drifting to the 28th.
    """
    value = to_decimal(amount)
    history = []
    current = start
    step = 0
    while current <= today:
        history.append({"date": current, "amount": value, "status": "paid"})
        step += 1
        current = _nth_charge(start, cycle, step)
    history.reverse()
    return history


def _nth_charge(start: date, cycle: str | None, n: int) -> date:
    cycle = (cycle or CYCLE_MONTHLY).lower()
    if cycle == CYCLE_WEEKLY:
        return start + timedelta(days=7 * n)
    if cycle == CYCLE_QUARTERLY:
        return add_months(start, 3 * n)
    if cycle == CYCLE_YEARLY:
        return add_months(start, 12 * n)
    return add_months(start, n)


def roll_forward(billing_date: date, cycle: str | None, today: date) -> date:
    """First charge date on or after today, stepping from billing_date by whole cycles."""
    if billing_date >= today:
        return billing_date
    step = 1
    current = advance_billing_date(billing_date, cycle)
    while current < today:
        step += 1
        current = _nth_charge(billing_date, cycle, step)
    return current
