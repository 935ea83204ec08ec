"""
Inventory module (``ledger_modules.inventory``).

The inventory ledger: an append-only movement log plus the aggregate and
per-location stock quantities it keeps consistent.
"""

from ledger_modules.inventory.models import MovementRecord, MovementType, ProductType
from ledger_modules.inventory.service import InventoryLedger

__all__ = ["InventoryLedger", "MovementRecord", "MovementType", "ProductType"]
