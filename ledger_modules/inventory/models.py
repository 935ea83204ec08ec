"""
Inventory domain models (``ledger_modules.inventory.models``).

Enums and frozen DTOs for products and stock movements.  Movement types
and their direction classes come from ``ledger_engines.stock``.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_engines.stock import INBOUND_TYPES, OUTBOUND_TYPES, MovementType

__all__ = [
    "INBOUND_TYPES",
    "OUTBOUND_TYPES",
    "MovementType",
    "ProductType",
    "MovementRecord",
    "StockLevel",
]


class ProductType(str, Enum):
    """Only INVENTORY products carry stock and capitalized cost."""

    INVENTORY = "inventory"
    SERVICE = "service"
    NON_INVENTORY = "non_inventory"


@dataclass(frozen=True)
class MovementRecord:
    movement_id: UUID
    product_id: UUID
    location_id: UUID | None
    movement_type: MovementType
    quantity: Decimal
    unit_cost: Decimal | None
    reference: str | None
    occurred_at: datetime
    stock_after: Decimal


@dataclass(frozen=True)
class StockLevel:
    """Aggregate and per-location stock for one product."""

    product_id: UUID
    stock_quantity: Decimal
    reserved_quantity: Decimal
    available_quantity: Decimal
    by_location: dict[UUID, Decimal]

    @property
    def location_total(self) -> Decimal:
        return sum(self.by_location.values(), Decimal("0"))
