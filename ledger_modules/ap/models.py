"""
Accounts payable domain models (``ledger_modules.ap.models``).
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_modules._posting_helpers import DocumentStatus

BillStatus = DocumentStatus


class PurchaseType(str, Enum):
    """Selects the tolerance pair used in matching and whether landed costs apply."""

    LOCAL = "local"
    IMPORT = "import"


@dataclass(frozen=True)
class BillSummary:
    bill_id: UUID
    bill_number: str
    status: BillStatus
    subtotal: Decimal
    tax_total: Decimal
    landed_cost_total: Decimal
    total_amount: Decimal
    balance_due: Decimal
