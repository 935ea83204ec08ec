"""
Stock engine -- movement classification and stock-delta validation.

Pure rules behind the inventory ledger.  Given the on-hand quantity and a
requested movement it returns the signed delta or raises the first
violated rule, in this order:

    1. outbound-class movement larger than on-hand  -> InsufficientStockError
    2. INBOUND/OUTBOUND without a positive unit cost -> UnitCostRequiredError
    3. non-positive quantity (except ADJUSTMENT_OUT, DAMAGE, THEFT,
       whose sign is implied by the type)          -> InvalidQuantityError
    4. resulting quantity below zero                -> NegativeStockPreventedError
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from ledger_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    NegativeStockPreventedError,
    UnitCostRequiredError,
)

_ZERO = Decimal("0")


class MovementType(str, Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
    RETURN_IN = "RETURN_IN"
    RETURN_OUT = "RETURN_OUT"
    DAMAGE = "DAMAGE"
    THEFT = "THEFT"
    PURCHASE = "PURCHASE"
    SALE = "SALE"


OUTBOUND_TYPES = frozenset({
    MovementType.OUTBOUND,
    MovementType.TRANSFER_OUT,
    MovementType.ADJUSTMENT_OUT,
    MovementType.RETURN_OUT,
    MovementType.DAMAGE,
    MovementType.THEFT,
    MovementType.SALE,
})

INBOUND_TYPES = frozenset(set(MovementType) - OUTBOUND_TYPES)

# Types whose direction is implied; a zero or negative input quantity is read as a magnitude.
SIGN_IMPLIED_TYPES = frozenset({
    MovementType.ADJUSTMENT_OUT,
    MovementType.DAMAGE,
    MovementType.THEFT,
})

COSTED_TYPES = frozenset({MovementType.INBOUND, MovementType.OUTBOUND})


@dataclass(frozen=True)
class StockDelta:
    movement_type: MovementType
    delta: Decimal
    before: Decimal
    after: Decimal

    @property
    def is_outbound(self) -> bool:
        return self.movement_type in OUTBOUND_TYPES


def signed_delta(movement_type: MovementType, quantity: Decimal) -> Decimal:
    """Outbound-class types are negative, inbound-class types positive."""
    magnitude = abs(quantity)
    return -magnitude if MovementType(movement_type) in OUTBOUND_TYPES else magnitude


def evaluate_movement(
    movement_type: MovementType,
    quantity: Decimal,
    on_hand: Decimal,
    unit_cost: Decimal | None = None,
    product_id: str = "",
    location_id: str | None = None,
) -> StockDelta:
    """
    Validate a movement against ``on_hand`` and return its signed delta.

    Raises:
        InsufficientStockError, UnitCostRequiredError, InvalidQuantityError,
        NegativeStockPreventedError: In that order of precedence.
    """
    movement_type = MovementType(movement_type)
    magnitude = abs(quantity)

    if movement_type in OUTBOUND_TYPES and magnitude > on_hand:
        raise InsufficientStockError(product_id, on_hand, magnitude, location_id)

    if movement_type in COSTED_TYPES and (unit_cost is None or unit_cost <= _ZERO):
        raise UnitCostRequiredError(movement_type.value, unit_cost)

    if quantity <= _ZERO and movement_type not in SIGN_IMPLIED_TYPES:
        raise InvalidQuantityError(movement_type.value, quantity)

    delta = signed_delta(movement_type, quantity)
    after = on_hand + delta
    if after < _ZERO:
        raise NegativeStockPreventedError(product_id, on_hand, delta)

    return StockDelta(movement_type=movement_type, delta=delta, before=on_hand, after=after)
