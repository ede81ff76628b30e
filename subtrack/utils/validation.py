"""
Validation utilities for user-entered amounts
"""
import re
from decimal import Decimal, InvalidOperation


def normalize_decimal_input(value: str) -> str:
    """
    Normalize an amount: comma → dot, surrounding whitespace dropped

    Example:
        >>> normalize_decimal_input(" 100,50 ")
        "100.50"
    """
    return value.strip().replace(",", ".")


def validate_decimal_amount(value, max_decimal_places: int = 2) -> tuple[bool, str | None]:
    """
    Validate a non-negative money amount

    Returns:
        (is_valid, error_message)

    Example:
        >>> validate_decimal_amount("9.99")
        (True, None)
        >>> validate_decimal_amount("-1")
        (False, "Amount cannot be negative")
    """
    normalized = normalize_decimal_input(str(value))

    try:
        decimal_value = Decimal(normalized)
    except (InvalidOperation, ValueError):
        return False, "Invalid amount"

    if not decimal_value.is_finite():
        return False, "Invalid amount"
    if decimal_value < 0:
        return False, "Amount cannot be negative"

    pattern = rf"^\d+(\.\d{{1,{max_decimal_places}}})?$"
    if not re.match(pattern, normalized):
        return False, f"At most {max_decimal_places} decimal places"

    return True, None


def parse_amount(value, max_decimal_places: int = 2) -> Decimal:
    """
    Validate and convert to Decimal

    Raises:
        ValueError: if validation fails
    """
    is_valid, error = validate_decimal_amount(value, max_decimal_places)
    if not is_valid:
        raise ValueError(error)
    return Decimal(normalize_decimal_input(str(value)))
