"""
Procurement (``ledger_modules.procurement``).

Purchase orders, goods receipts, delivery into stock or fixed assets, and
three-way matching of orders against vendor bills.
"""

from ledger_modules.procurement.matching import ThreeWayMatchService
from ledger_modules.procurement.models import (
    MatchResult,
    MatchStatus,
    OrderType,
    PurchaseOrderLineInput,
    PurchaseOrderStatus,
    ReceiptItemInput,
    ReceivingStatus,
)
from ledger_modules.procurement.service import ProcurementService

__all__ = [
    "MatchResult",
    "MatchStatus",
    "OrderType",
    "ProcurementService",
    "PurchaseOrderLineInput",
    "PurchaseOrderStatus",
    "ReceiptItemInput",
    "ReceivingStatus",
    "ThreeWayMatchService",
]
