"""
Decimal precision helpers for money, stock and loyalty points.

Money is stored with 2 decimal places, ingredient quantities and loyalty points
with 4. Never use float for any of them.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

MONEY_PLACES = Decimal("0.01")
QUANTITY_PLACES = Decimal("0.0001")

Number = Union[Decimal, str, int]


def to_decimal(value: Number) -> Decimal:
    """
    Coerce ``value`` to Decimal.

    Raises:
        TypeError: for floats, which cannot represent money exactly
    """
    if isinstance(value, float):
        raise TypeError("Use Decimal or str for monetary and stock values, not float")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Number) -> Decimal:
    """
    Round to currency precision.

    >>> quantize_money("5.505")
    Decimal('5.51')
    """
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def quantize_quantity(value: Number) -> Decimal:
    """Round an ingredient quantity or point balance to 4 decimal places."""
    return to_decimal(value).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)
