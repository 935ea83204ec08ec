"""
Accounts receivable (``ledger_modules.ar``).

Customer invoices, their AR/revenue postings and cost of goods sold.
"""

from ledger_modules.ar.models import InvoiceStatus
from ledger_modules.ar.service import InvoiceService

__all__ = ["InvoiceService", "InvoiceStatus"]
