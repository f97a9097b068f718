from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

from app.core.exceptions import InvalidAmount

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, str]


def to_money(value: Number) -> Decimal:
    """
    Converts to a 2-decimal Decimal, rounding half up.

    Floats are refused: money never goes through binary floating point.
    """
    if isinstance(value, float):
        raise TypeError("Money values must be Decimal, int or str, not float")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid money value: {value!r}") from e
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def percentage_of(amount: Decimal, percentage: Decimal) -> Decimal:
    """amount * percentage / 100, unrounded."""
    return Decimal(amount) * Decimal(percentage) / Decimal(100)


def positive_amount(value: Number) -> Decimal:
    """to_money for amounts that must be greater than 0; raises InvalidAmount otherwise."""
    if isinstance(value, float):
        raise InvalidAmount("Amount must be a decimal value, not a float")
    try:
        amount = to_money(value)
    except ValueError as e:
        raise InvalidAmount(str(e)) from e
    if amount <= 0:
        raise InvalidAmount(f"Amount must be greater than 0, got {amount}")
    return amount
