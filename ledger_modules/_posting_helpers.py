"""
Shared helpers for module posting flows.

``PostingKernel`` bundles the session-bound kernel services every document
converter needs, so each module service is built from one object instead
of five.  ``load_scoped`` fetches a tenant/company-scoped row, optionally
under a row lock (PostgreSQL), or raises DocumentNotFoundError.  The
document helpers hold the status enum, line input and balance settlement
shared by bills and invoices.

Architecture: Modules layer.  Imports from ledger_kernel, ledger_engines
and the tax module.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engines.tax import LineAmounts, TaxTreatment, compute_line
from ledger_kernel.db.base import ScopedBase
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import DocumentNotFoundError, InvalidDocumentError
from ledger_kernel.services.account_resolver import AccountMappingCache, AccountResolver
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_guard import DEFAULT_MIN_JUSTIFICATION_LENGTH, PeriodGuard
from ledger_modules.tax.service import TaxRateResolver

ModelT = TypeVar("ModelT", bound=ScopedBase)


@dataclass(frozen=True)
class PostingKernel:
    """Kernel services bound to one session."""

    session: Session
    clock: Clock
    auditor: AuditorService
    period_guard: PeriodGuard
    journal: JournalService
    resolver: AccountResolver

    @classmethod
    def build(
        cls,
        session: Session,
        clock: Clock | None = None,
        *,
        account_cache: AccountMappingCache | None = None,
        min_justification_length: int = DEFAULT_MIN_JUSTIFICATION_LENGTH,
    ) -> "PostingKernel":
        clock = clock or SystemClock()
        auditor = AuditorService(session, clock)
        period_guard = PeriodGuard(
            session,
            auditor,
            clock,
            min_justification_length=min_justification_length,
        )
        return cls(
            session=session,
            clock=clock,
            auditor=auditor,
            period_guard=period_guard,
            journal=JournalService(session, period_guard, clock),
            resolver=AccountResolver(session, account_cache),
        )


@dataclass(frozen=True)
class DocumentPostingResult:
    """Outcome of posting one document."""

    document_type: str
    document_id: UUID
    status: str
    journal_entry_id: UUID | None
    total_amount: Decimal
    period_key: str
    override_audit_event_id: UUID | None = None
    movement_count: int = 0


def load_scoped(
    session: Session,
    model: type[ModelT],
    document_id: UUID,
    tenant_id: str,
    company_id: str,
    *,
    document_type: str | None = None,
    for_update: bool = False,
) -> ModelT:
    """Fetch one row owned by the tenant/company or raise DocumentNotFoundError."""
    stmt = select(model).where(
        model.id == document_id,
        model.tenant_id == tenant_id,
        model.company_id == company_id,
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        raise DocumentNotFoundError(document_type or model.__name__, str(document_id))
    return row


# =============================================================================
# Financial documents (bills and invoices)
# =============================================================================


class DocumentStatus(str, Enum):
    """Lifecycle shared by bills and invoices."""

    DRAFT = "draft"
    POSTED = "posted"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


# Statuses that accept payment applications.
OPEN_STATUSES = frozenset({
    DocumentStatus.POSTED,
    DocumentStatus.PARTIALLY_PAID,
    DocumentStatus.OVERDUE,
})


@dataclass(frozen=True)
class DocumentLineInput:
    """
    One validated bill or invoice line.

    The tax rate is resolved from ``tax_rate_id``, then ``tax_name``, then
    the numeric ``tax_rate_pct`` (percent).
    """

    description: str
    quantity: Decimal
    unit_price: Decimal
    product_id: UUID | None = None
    location_id: UUID | None = None
    tax_rate_id: UUID | None = None
    tax_name: str | None = None
    tax_rate_pct: Decimal | None = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Line quantity must be positive: {self.description}")
        if self.unit_price < 0:
            raise ValueError(f"Line unit price cannot be negative: {self.description}")


def compute_document_lines(
    tax_resolver: TaxRateResolver,
    tenant_id: str,
    company_id: str,
    lines: Sequence[DocumentLineInput],
    treatment: TaxTreatment = TaxTreatment.EXCLUSIVE,
) -> list[LineAmounts]:
    """Resolve each line's tax rate and compute its rounded amounts."""
    computed = []
    for line in lines:
        rate_pct = tax_resolver.resolve(
            tenant_id,
            company_id,
            tax_rate_id=line.tax_rate_id,
            tax_name=line.tax_name,
            fallback_pct=line.tax_rate_pct,
        )
        computed.append(compute_line(line.quantity, line.unit_price, rate_pct, treatment))
    return computed


def settle_balance(document, amount: Decimal, actor_id: UUID) -> None:
    """
    Reduce a bill's or invoice's balance due and move its status.

    Raises:
        InvalidDocumentError: Amount is not positive or exceeds the balance.
    """
    if amount <= 0 or amount > document.balance_due:
        raise InvalidDocumentError(
            type(document).__name__,
            f"cannot apply {amount} against balance due {document.balance_due}",
        )
    document.balance_due = document.balance_due - amount
    document.status = (
        DocumentStatus.PAID.value if document.balance_due == 0 else DocumentStatus.PARTIALLY_PAID.value
    )
    document.updated_by_id = actor_id
