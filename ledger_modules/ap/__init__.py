"""
Accounts payable (``ledger_modules.ap``).

Vendor bills, their AP postings and landed cost allocation.
"""

from ledger_modules.ap.landed_cost import LandedCostService
from ledger_modules.ap.models import BillStatus, PurchaseType
from ledger_modules.ap.service import BillService

__all__ = ["BillService", "BillStatus", "LandedCostService", "PurchaseType"]
