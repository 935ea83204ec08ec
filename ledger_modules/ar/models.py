"""
Accounts receivable domain models (``ledger_modules.ar.models``).
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from ledger_modules._posting_helpers import DocumentStatus

InvoiceStatus = DocumentStatus


@dataclass(frozen=True)
class InvoiceSummary:
    invoice_id: UUID
    invoice_number: str
    status: InvoiceStatus
    subtotal: Decimal
    tax_total: Decimal
    total_amount: Decimal
    balance_due: Decimal
