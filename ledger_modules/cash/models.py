"""
Cash domain models (``ledger_modules.cash.models``).
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID


class PaymentDirection(str, Enum):
    """RECEIVABLE settles invoices (money in); PAYABLE settles bills (money out)."""

    RECEIVABLE = "receivable"
    PAYABLE = "payable"

    @property
    def document_type(self) -> str:
        return "Invoice" if self is PaymentDirection.RECEIVABLE else "Bill"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    CARD = "card"
    OTHER = "other"


@dataclass(frozen=True)
class ApplicationRecord:
    application_id: UUID
    payment_id: UUID
    document_type: str
    document_id: UUID
    requested: Decimal
    amount_applied: Decimal
    balance_after: Decimal

    @property
    def capped(self) -> bool:
        return self.amount_applied < self.requested


@dataclass(frozen=True)
class PaymentResult:
    payment_id: UUID
    journal_entry_id: UUID
    amount: Decimal
    applications: tuple[ApplicationRecord, ...]
    unapplied_amount: Decimal
    period_key: str
    override_audit_event_id: UUID | None = None

    @property
    def applied_amount(self) -> Decimal:
        return sum((a.amount_applied for a in self.applications), Decimal("0"))
