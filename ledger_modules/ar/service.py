"""
Invoice Service (``ledger_modules.ar.service``).

Responsibility
--------------
Creates customer invoices and converts them into AR journal postings.

Posting sequence
----------------
1. Lock the invoice; anything other than draft is ``AlreadyPostedError``.
2. Period guard check for the invoice date.
3. Resolve AR, REVENUE and, when needed, TAX_PAYABLE, COGS and INVENTORY.
4. Post one balanced entry:
     Dr AR           invoice total
         Cr REVENUE      subtotal
         Cr TAX_PAYABLE  tax total (when non-zero)
     Dr COGS         cost × quantity   (inventory lines with a known cost)
         Cr INVENTORY    same amount
5. One outbound SALE movement per inventory line.
6. Status flip to posted, then the audit record.

Failure Modes
-------------
- ``InsufficientStockError`` from a SALE movement rolls back the whole
  posting, journal entry included.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_engines.stock import MovementType
from ledger_engines.tax import TaxTreatment, summarize
from ledger_kernel.db.types import round_money
from ledger_kernel.domain.dtos import LineSpec, PeriodOverride, period_key_for
from ledger_kernel.exceptions import (
    AlreadyPostedError,
    InvalidDocumentError,
    InvalidStatusTransitionError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountPurpose
from ledger_modules._posting_helpers import (
    DocumentLineInput,
    DocumentPostingResult,
    PostingKernel,
    compute_document_lines,
    load_scoped,
)
from ledger_modules.ar.models import InvoiceStatus
from ledger_modules.ar.orm import InvoiceLineModel, InvoiceModel
from ledger_modules.inventory.models import ProductType
from ledger_modules.inventory.orm import ProductModel
from ledger_modules.inventory.service import InventoryLedger
from ledger_modules.tax.service import TaxRateResolver

logger = get_logger("modules.ar.service")

DOCUMENT_TYPE = "Invoice"

_ZERO = Decimal("0")


class InvoiceService:
    def __init__(self, kernel: PostingKernel):
        self._kernel = kernel
        self._session = kernel.session
        self._taxes = TaxRateResolver(kernel.session)
        self._inventory = InventoryLedger(kernel.session, kernel.clock)

    def create_invoice(
        self,
        *,
        tenant_id: str,
        company_id: str,
        customer_id: str,
        invoice_number: str,
        invoice_date: date,
        lines: Sequence[DocumentLineInput],
        actor_id: UUID,
        due_date: date | None = None,
        currency: str = "USD",
        tax_treatment: TaxTreatment = TaxTreatment.EXCLUSIVE,
    ) -> InvoiceModel:
        """Create a draft invoice with computed totals."""
        if not lines:
            raise InvalidDocumentError(DOCUMENT_TYPE, "an invoice needs at least one line")

        amounts = compute_document_lines(self._taxes, tenant_id, company_id, lines, tax_treatment)
        totals = summarize(amounts)

        invoice = InvoiceModel(
            tenant_id=tenant_id,
            company_id=company_id,
            customer_id=customer_id,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            due_date=due_date,
            currency=currency,
            subtotal=totals.subtotal,
            tax_total=totals.tax_total,
            total_amount=totals.total,
            balance_due=totals.total,
            status=InvoiceStatus.DRAFT.value,
            created_by_id=actor_id,
        )
        for line_no, (line, amount) in enumerate(zip(lines, amounts), start=1):
            if line.product_id is not None:
                self._inventory.get_product(tenant_id, company_id, line.product_id)
            invoice.lines.append(
                InvoiceLineModel(
                    tenant_id=tenant_id,
                    company_id=company_id,
                    line_no=line_no,
                    description=line.description,
                    product_id=line.product_id,
                    location_id=line.location_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    tax_rate_pct=amount.rate_pct,
                    net_amount=amount.net,
                    tax_amount=amount.tax,
                    line_total=amount.gross,
                    created_by_id=actor_id,
                )
            )
        self._session.add(invoice)
        self._session.flush()
        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice_number,
                "total_amount": invoice.total_amount,
            },
        )
        return invoice

    def get_invoice(self, tenant_id: str, company_id: str, invoice_id: UUID) -> InvoiceModel:
        return load_scoped(
            self._session, InvoiceModel, invoice_id, tenant_id, company_id, document_type=DOCUMENT_TYPE
        )

    def _stock_lines(self, invoice: InvoiceModel) -> list[tuple[InvoiceLineModel, ProductModel]]:
        stocked = []
        for line in invoice.lines:
            if line.product_id is None:
                continue
            product = self._inventory.get_product(invoice.tenant_id, invoice.company_id, line.product_id)
            if product.product_type == ProductType.INVENTORY.value:
                stocked.append((line, product))
        return stocked

    def post_invoice(
        self,
        *,
        tenant_id: str,
        company_id: str,
        invoice_id: UUID,
        actor_id: UUID,
        override: PeriodOverride | None = None,
    ) -> DocumentPostingResult:
        """
        Post a draft invoice.

        Raises:
            DocumentNotFoundError, AlreadyPostedError, PeriodLockedError,
            InvalidOverrideError, MissingAccountsError, InsufficientStockError.
        """
        kernel = self._kernel
        invoice = load_scoped(
            self._session, InvoiceModel, invoice_id, tenant_id, company_id,
            document_type=DOCUMENT_TYPE, for_update=True,
        )
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise AlreadyPostedError(DOCUMENT_TYPE, str(invoice.id), invoice.status)

        clearance = kernel.period_guard.check(
            tenant_id=tenant_id,
            company_id=company_id,
            document_date=invoice.invoice_date,
            document_type=DOCUMENT_TYPE,
            document_id=invoice.id,
            actor_id=actor_id,
            override=override,
        )

        stocked = self._stock_lines(invoice)
        costed = [
            (line, round_money(product.cost_price * line.quantity))
            for line, product in stocked
            if product.cost_price > _ZERO
        ]

        purposes = [AccountPurpose.AR, AccountPurpose.REVENUE]
        if invoice.tax_total > _ZERO:
            purposes.append(AccountPurpose.TAX_PAYABLE)
        if costed:
            purposes.extend([AccountPurpose.COGS, AccountPurpose.INVENTORY])
        accounts = kernel.resolver.require(tenant_id, company_id, purposes)

        specs = [
            LineSpec(
                account_id=accounts[AccountPurpose.AR].account_id,
                debit=invoice.total_amount,
                memo=f"Invoice {invoice.invoice_number}",
            ),
            LineSpec(account_id=accounts[AccountPurpose.REVENUE].account_id, credit=invoice.subtotal, memo="Revenue"),
        ]
        if invoice.tax_total > _ZERO:
            specs.append(
                LineSpec(
                    account_id=accounts[AccountPurpose.TAX_PAYABLE].account_id,
                    credit=invoice.tax_total,
                    memo="Sales tax",
                )
            )
        for line, cost in costed:
            specs.append(LineSpec(account_id=accounts[AccountPurpose.COGS].account_id, debit=cost, memo=line.description))
            specs.append(LineSpec(account_id=accounts[AccountPurpose.INVENTORY].account_id, credit=cost, memo=line.description))

        entry = kernel.journal.create_entry(
            tenant_id=tenant_id,
            company_id=company_id,
            entry_date=invoice.invoice_date,
            actor_id=actor_id,
            memo=f"Customer invoice {invoice.invoice_number}",
            reference=invoice.invoice_number,
            source_document_type=DOCUMENT_TYPE,
            source_document_id=invoice.id,
        )
        kernel.journal.add_lines(entry, specs)
        posted = kernel.journal.post(entry, actor_id, clearance=clearance, document_type=DOCUMENT_TYPE)

        for line, product in stocked:
            self._inventory.record_movement(
                tenant_id=tenant_id,
                company_id=company_id,
                product_id=product.id,
                movement_type=MovementType.SALE,
                quantity=line.quantity,
                actor_id=actor_id,
                location_id=line.location_id,
                unit_cost=product.cost_price if product.cost_price > _ZERO else None,
                reference=invoice.invoice_number,
                reference_type=DOCUMENT_TYPE,
                reference_id=invoice.id,
            )

        invoice.status = InvoiceStatus.POSTED.value
        invoice.journal_entry_id = posted.entry_id
        invoice.posted_at = kernel.clock.now()
        invoice.updated_by_id = actor_id
        self._session.flush()

        kernel.auditor.record_document_posted(
            tenant_id=tenant_id,
            company_id=company_id,
            document_type=DOCUMENT_TYPE,
            document_id=invoice.id,
            journal_entry_id=posted.entry_id,
            actor_id=actor_id,
            details={"totalAmount": invoice.total_amount, "overridden": clearance.overridden},
        )
        logger.info(
            "invoice_posted",
            extra={
                "invoice_id": str(invoice.id),
                "entry_id": str(posted.entry_id),
                "total_amount": invoice.total_amount,
                "movement_count": len(stocked),
            },
        )
        return DocumentPostingResult(
            document_type=DOCUMENT_TYPE,
            document_id=invoice.id,
            status=invoice.status,
            journal_entry_id=posted.entry_id,
            total_amount=invoice.total_amount,
            period_key=period_key_for(invoice.invoice_date),
            override_audit_event_id=clearance.audit_event_id,
            movement_count=len(stocked),
        )

    def cancel_invoice(self, *, tenant_id: str, company_id: str, invoice_id: UUID, actor_id: UUID) -> InvoiceModel:
        invoice = load_scoped(
            self._session, InvoiceModel, invoice_id, tenant_id, company_id,
            document_type=DOCUMENT_TYPE, for_update=True,
        )
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise InvalidStatusTransitionError(
                DOCUMENT_TYPE, str(invoice.id), invoice.status, InvoiceStatus.CANCELLED.value
            )
        invoice.status = InvoiceStatus.CANCELLED.value
        invoice.updated_by_id = actor_id
        self._session.flush()
        return invoice

    def mark_overdue(self, *, tenant_id: str, company_id: str, as_of: date, actor_id: UUID) -> list[InvoiceModel]:
        invoices = list(
            self._session.execute(
                select(InvoiceModel).where(
                    InvoiceModel.tenant_id == tenant_id,
                    InvoiceModel.company_id == company_id,
                    InvoiceModel.status.in_([InvoiceStatus.POSTED.value, InvoiceStatus.PARTIALLY_PAID.value]),
                    InvoiceModel.due_date.is_not(None),
                    InvoiceModel.due_date < as_of,
                    InvoiceModel.balance_due > _ZERO,
                )
            ).scalars()
        )
        for invoice in invoices:
            invoice.status = InvoiceStatus.OVERDUE.value
            invoice.updated_by_id = actor_id
        self._session.flush()
        return invoices
