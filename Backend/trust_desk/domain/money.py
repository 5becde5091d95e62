"""Currency helpers. The trust holds a single currency (USD)."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, floats and numeric strings to Decimal.

    Floats go through ``str`` so 0.1 stays 0.1.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"not a number: {value!r}")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def format_currency(value: Decimal) -> str:
    """``Decimal("2500")`` -> ``"$2,500.00"``"""
    amount = to_cents(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"
