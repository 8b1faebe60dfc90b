"""Helpers for currency values stored as integer cents."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

_DECIMAL_2_PLACES = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Convert *value* to a Decimal rounded to two places."""
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Not a monetary value: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a monetary value: {value!r}")
    return amount.quantize(_DECIMAL_2_PLACES, rounding=ROUND_HALF_UP)


def to_cents(value: Any) -> int:
    """Return the integer cent representation of *value*."""
    return int(to_decimal(value) * 100)


def from_cents(cents: Optional[int]) -> float:
    """Convert stored cents into the two-place number returned by the API."""
    if cents is None:
        return 0.0
    return float(Decimal(cents) / Decimal(100))
