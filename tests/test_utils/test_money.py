"""
Tests for money formatting and amount validation
"""
from decimal import Decimal

import pytest

from subtrack.utils.money import format_money, round_money
from subtrack.utils.validation import parse_amount, validate_decimal_amount


@pytest.mark.parametrize("amount, expected", [
    (1234.5, "$1,234.50"),
    ("9.99", "$9.99"),
    (Decimal("-3.5"), "-$3.50"),
    (0, "$0.00"),
])
def test_format_money_usd(amount, expected):
    assert format_money(amount) == expected


def test_format_money_other_currency():
    assert format_money(20, "EUR") == "20.00 EUR"


def test_round_money_half_up():
    assert round_money("2.345") == Decimal("2.35")


@pytest.mark.parametrize("value, expected", [
    ("10", Decimal("10")),
    (" 10,5 ", Decimal("10.5")),
    ("0.99", Decimal("0.99")),
    (7, Decimal("7")),
])
def test_parse_amount(value, expected):
    assert parse_amount(value) == expected


@pytest.mark.parametrize("value, message", [
    ("-1", "negative"),
    ("1.234", "decimal places"),
    ("abc", "Invalid amount"),
    ("NaN", "Invalid amount"),
    ("", "Invalid amount"),
])
def test_invalid_amounts(value, message):
    is_valid, error = validate_decimal_amount(value)
    assert not is_valid
    assert message in error
    with pytest.raises(ValueError):
        parse_amount(value)
