"""
Module: ledger_kernel.db.types
Responsibility: Shared column aliases and the rounding rules for money and
    unit costs.

Invariants enforced:
    - Monetary values are rounded half-up to the currency minor unit
      (2 places) at the line level, before any summation.
    - Unit costs are rounded half-up to 4 places.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric
from sqlalchemy.orm import mapped_column

MONEY_PLACES = 2
UNIT_COST_PLACES = 4

Money = Annotated[Decimal, mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))]
Quantity = Annotated[Decimal, mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))]

_ZERO = Decimal("0")


def _quantum(places: int) -> Decimal:
    return Decimal(1).scaleb(-places)


def round_money(
    value: Decimal | int | str,
    decimal_places: int = MONEY_PLACES,
    rounding: str = ROUND_HALF_UP,
) -> Decimal:
    """
    Round a monetary value to the currency minor unit.

    Args:
        value: Amount as Decimal (or int/str convertible to Decimal).
        decimal_places: Places to keep (default 2).
        rounding: Decimal rounding mode (default ROUND_HALF_UP).

    Returns:
        Rounded Decimal.

    Raises:
        TypeError: If value is a float.
    """
    if isinstance(value, float):
        raise TypeError("Monetary values must be Decimal, not float")
    return Decimal(value).quantize(_quantum(decimal_places), rounding=rounding)


def round_unit_cost(value: Decimal, decimal_places: int = UNIT_COST_PLACES) -> Decimal:
    return round_money(value, decimal_places)


def to_decimal(value: Decimal | int | str | None, default: Decimal = _ZERO) -> Decimal:
    """Coerce an input amount to Decimal, rejecting floats."""
    if value is None:
        return default
    if isinstance(value, float):
        raise TypeError("Monetary values must be Decimal, not float")
    return Decimal(value)
