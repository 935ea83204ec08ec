"""
Cash (``ledger_modules.cash``).

Payments, their cash postings and their application against open
invoices and bills.
"""

from ledger_modules.cash.application import PaymentApplicationEngine
from ledger_modules.cash.models import ApplicationRecord, PaymentDirection, PaymentMethod, PaymentResult
from ledger_modules.cash.service import PaymentService

__all__ = [
    "ApplicationRecord",
    "PaymentApplicationEngine",
    "PaymentDirection",
    "PaymentMethod",
    "PaymentResult",
    "PaymentService",
]
