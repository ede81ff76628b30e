"""
Unified money formatting for notification texts and alerts.

Usage:
    from subtrack.utils.money import format_money

    format_money(1234.5)     -> "$1,234.50"
    format_money("9.99")     -> "$9.99"
    format_money(20, "EUR")  -> "20.00 EUR"
"""
from decimal import Decimal, ROUND_HALF_UP

from subtrack.domain.billing import to_decimal

_CURRENCY_PREFIX = {
    "USD": "$",
}

CENT = Decimal("0.01")


def round_money(amount) -> Decimal:
    """Round to cents, half up (what a bank statement shows)."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount, currency: str = "USD") -> str:
    """Thousands separators, 2 decimals; "$" prefix for USD, ISO suffix otherwise."""
    formatted = f"{round_money(amount):,.2f}"
    prefix = _CURRENCY_PREFIX.get(currency)
    if prefix:
        if formatted.startswith("-"):
            return f"-{prefix}{formatted[1:]}"
        return f"{prefix}{formatted}"
    return f"{formatted} {currency}"
