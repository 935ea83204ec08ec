"""
Bill Service (``ledger_modules.ap.service``).

Responsibility
--------------
Creates vendor bills and converts them into AP journal postings.

Posting sequence (one unit of work, fixed order)
------------------------------------------------
1. Lock the bill; reject anything that is not draft (``AlreadyPostedError``).
2. Period guard check for the bill date (``PeriodLockedError`` unless an
   audited override is supplied).
3. Resolve every needed account purpose before any write
   (``MissingAccountsError``).
4. Build and post the balanced entry:
     Dr INVENTORY  line total         (inventory product lines)
     Dr EXPENSE    line total         (all other lines)
     Dr INVENTORY  landed costs       (allocated into product cost)
     Dr EXPENSE    landed costs       (not allocated)
         Cr AP     bill total
5. Inventory side effects: one inbound PURCHASE movement per inventory
   line, for bills not linked to a purchase order.
6. Status flip to posted, then the audit record.

Invariants
----------
- Every line amount is rounded to the cent before summation.
- balance_due starts at total_amount and only decreases.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_engines.landed_cost import LandedCostCharges
from ledger_engines.stock import MovementType
from ledger_engines.tax import TaxTreatment, summarize
from ledger_kernel.db.types import round_money, round_unit_cost
from ledger_kernel.domain.dtos import LineSpec, PeriodOverride, period_key_for
from ledger_kernel.exceptions import (
    AlreadyPostedError,
    InvalidDocumentError,
    InvalidStatusTransitionError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountPurpose
from ledger_kernel.services.account_resolver import AccountRef
from ledger_modules._posting_helpers import (
    DocumentLineInput,
    DocumentPostingResult,
    PostingKernel,
    compute_document_lines,
    load_scoped,
)
from ledger_modules.ap.models import BillStatus, PurchaseType
from ledger_modules.ap.orm import BillLineModel, BillModel
from ledger_modules.inventory.models import ProductType
from ledger_modules.inventory.service import InventoryLedger
from ledger_modules.tax.service import TaxRateResolver

logger = get_logger("modules.ap.service")

DOCUMENT_TYPE = "Bill"

_ZERO = Decimal("0")


class BillService:
    """
    Vendor bill lifecycle: create, post, cancel, mark overdue.

    Contract
    --------
    Receives the caller's session through ``PostingKernel`` and only
    flushes.  A failure at any step leaves the caller's unit of work to
    roll back everything written so far.
    """

    def __init__(self, kernel: PostingKernel):
        self._kernel = kernel
        self._session = kernel.session
        self._taxes = TaxRateResolver(kernel.session)
        self._inventory = InventoryLedger(kernel.session, kernel.clock)

    # =========================================================================
    # Creation
    # =========================================================================

    def create_bill(
        self,
        *,
        tenant_id: str,
        company_id: str,
        vendor_id: str,
        bill_number: str,
        bill_date: date,
        lines: Sequence[DocumentLineInput],
        actor_id: UUID,
        due_date: date | None = None,
        currency: str = "USD",
        purchase_type: PurchaseType = PurchaseType.LOCAL,
        purchase_order_id: UUID | None = None,
        landed_costs: LandedCostCharges | None = None,
        tax_treatment: TaxTreatment = TaxTreatment.EXCLUSIVE,
    ) -> BillModel:
        """
        Create a draft bill with computed line totals.

        Raises:
            InvalidDocumentError: No lines, or landed costs on a local bill.
        """
        if not lines:
            raise InvalidDocumentError(DOCUMENT_TYPE, "a bill needs at least one line")
        purchase_type = PurchaseType(purchase_type)
        charges = landed_costs or LandedCostCharges()
        if charges.total > _ZERO and purchase_type != PurchaseType.IMPORT:
            raise InvalidDocumentError(DOCUMENT_TYPE, "landed costs apply to import bills only")

        amounts = compute_document_lines(self._taxes, tenant_id, company_id, lines, tax_treatment)
        totals = summarize(amounts, extra_charges=charges.total)

        bill = BillModel(
            tenant_id=tenant_id,
            company_id=company_id,
            vendor_id=vendor_id,
            bill_number=bill_number,
            bill_date=bill_date,
            due_date=due_date,
            currency=currency,
            purchase_type=purchase_type.value,
            purchase_order_id=purchase_order_id,
            subtotal=totals.subtotal,
            tax_total=totals.tax_total,
            freight_cost=round_money(charges.freight),
            customs_duty=round_money(charges.customs),
            other_import_costs=round_money(charges.other),
            total_amount=totals.total,
            balance_due=totals.total,
            status=BillStatus.DRAFT.value,
            created_by_id=actor_id,
        )
        for line_no, (line, amount) in enumerate(zip(lines, amounts), start=1):
            bill.lines.append(
                BillLineModel(
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
                    is_inventory=self._is_inventory_product(tenant_id, company_id, line.product_id),
                    created_by_id=actor_id,
                )
            )
        self._session.add(bill)
        self._session.flush()

        logger.info(
            "bill_created",
            extra={
                "bill_id": str(bill.id),
                "bill_number": bill_number,
                "total_amount": bill.total_amount,
                "line_count": len(lines),
            },
        )
        return bill

    def _is_inventory_product(self, tenant_id: str, company_id: str, product_id: UUID | None) -> bool:
        if product_id is None:
            return False
        product = self._inventory.get_product(tenant_id, company_id, product_id)
        return product.product_type == ProductType.INVENTORY.value

    def get_bill(self, tenant_id: str, company_id: str, bill_id: UUID) -> BillModel:
        return load_scoped(self._session, BillModel, bill_id, tenant_id, company_id, document_type=DOCUMENT_TYPE)

    # =========================================================================
    # Posting
    # =========================================================================

    def _journal_lines(
        self, bill: BillModel, accounts: dict[AccountPurpose, AccountRef]
    ) -> list[LineSpec]:
        specs: list[LineSpec] = []
        for line in bill.lines:
            purpose = AccountPurpose.INVENTORY if line.is_inventory else AccountPurpose.EXPENSE
            specs.append(
                LineSpec(
                    account_id=accounts[purpose].account_id,
                    debit=round_money(line.line_total),
                    memo=line.description,
                )
            )
        landed = round_money(bill.landed_cost_total)
        if landed > _ZERO:
            purpose = AccountPurpose.INVENTORY if bill.landed_cost_allocated else AccountPurpose.EXPENSE
            specs.append(
                LineSpec(
                    account_id=accounts[purpose].account_id,
                    debit=landed,
                    memo="Landed costs",
                )
            )
        specs.append(
            LineSpec(
                account_id=accounts[AccountPurpose.AP].account_id,
                credit=round_money(bill.total_amount),
                memo=f"Bill {bill.bill_number}",
            )
        )
        return specs

    def _required_purposes(self, bill: BillModel) -> list[AccountPurpose]:
        purposes = [AccountPurpose.AP]
        has_landed = bill.landed_cost_total > _ZERO
        if any(line.is_inventory for line in bill.lines) or (has_landed and bill.landed_cost_allocated):
            purposes.append(AccountPurpose.INVENTORY)
        if any(not line.is_inventory for line in bill.lines) or (has_landed and not bill.landed_cost_allocated):
            purposes.append(AccountPurpose.EXPENSE)
        return purposes

    def post_bill(
        self,
        *,
        tenant_id: str,
        company_id: str,
        bill_id: UUID,
        actor_id: UUID,
        override: PeriodOverride | None = None,
    ) -> DocumentPostingResult:
        """
        Post a draft bill.

        Raises:
            DocumentNotFoundError, AlreadyPostedError, PeriodLockedError,
            InvalidOverrideError, MissingAccountsError, UnbalancedEntryError,
            inventory errors from the PURCHASE movements.
        """
        kernel = self._kernel
        bill = load_scoped(
            self._session, BillModel, bill_id, tenant_id, company_id,
            document_type=DOCUMENT_TYPE, for_update=True,
        )
        if bill.status != BillStatus.DRAFT.value:
            raise AlreadyPostedError(DOCUMENT_TYPE, str(bill.id), bill.status)

        clearance = kernel.period_guard.check(
            tenant_id=tenant_id,
            company_id=company_id,
            document_date=bill.bill_date,
            document_type=DOCUMENT_TYPE,
            document_id=bill.id,
            actor_id=actor_id,
            override=override,
        )
        accounts = kernel.resolver.require(tenant_id, company_id, self._required_purposes(bill))

        entry = kernel.journal.create_entry(
            tenant_id=tenant_id,
            company_id=company_id,
            entry_date=bill.bill_date,
            actor_id=actor_id,
            memo=f"Vendor bill {bill.bill_number}",
            reference=bill.bill_number,
            source_document_type=DOCUMENT_TYPE,
            source_document_id=bill.id,
        )
        kernel.journal.add_lines(entry, self._journal_lines(bill, accounts))
        posted = kernel.journal.post(entry, actor_id, clearance=clearance, document_type=DOCUMENT_TYPE)

        movement_count = 0
        if bill.purchase_order_id is None:
            movement_count = self._receive_stock(bill, actor_id)

        bill.status = BillStatus.POSTED.value
        bill.journal_entry_id = posted.entry_id
        bill.posted_at = kernel.clock.now()
        bill.updated_by_id = actor_id
        self._session.flush()

        kernel.auditor.record_document_posted(
            tenant_id=tenant_id,
            company_id=company_id,
            document_type=DOCUMENT_TYPE,
            document_id=bill.id,
            journal_entry_id=posted.entry_id,
            actor_id=actor_id,
            details={"totalAmount": bill.total_amount, "overridden": clearance.overridden},
        )

        logger.info(
            "bill_posted",
            extra={
                "bill_id": str(bill.id),
                "entry_id": str(posted.entry_id),
                "total_amount": bill.total_amount,
                "movement_count": movement_count,
                "period_key": clearance.period_key,
            },
        )
        return DocumentPostingResult(
            document_type=DOCUMENT_TYPE,
            document_id=bill.id,
            status=bill.status,
            journal_entry_id=posted.entry_id,
            total_amount=bill.total_amount,
            period_key=period_key_for(bill.bill_date),
            override_audit_event_id=clearance.audit_event_id,
            movement_count=movement_count,
        )

    def _receive_stock(self, bill: BillModel, actor_id: UUID) -> int:
        count = 0
        for line in bill.lines:
            if not line.is_inventory:
                continue
            self._inventory.record_movement(
                tenant_id=bill.tenant_id,
                company_id=bill.company_id,
                product_id=line.product_id,
                movement_type=MovementType.PURCHASE,
                quantity=line.quantity,
                actor_id=actor_id,
                location_id=line.location_id,
                unit_cost=round_unit_cost(line.unit_price + line.landed_cost_per_unit),
                reference=bill.bill_number,
                reference_type=DOCUMENT_TYPE,
                reference_id=bill.id,
            )
            count += 1
        return count

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def cancel_bill(self, *, tenant_id: str, company_id: str, bill_id: UUID, actor_id: UUID) -> BillModel:
        """Cancel a draft bill; posted bills are never cancelled."""
        bill = load_scoped(
            self._session, BillModel, bill_id, tenant_id, company_id,
            document_type=DOCUMENT_TYPE, for_update=True,
        )
        if bill.status != BillStatus.DRAFT.value:
            raise InvalidStatusTransitionError(
                DOCUMENT_TYPE, str(bill.id), bill.status, BillStatus.CANCELLED.value
            )
        bill.status = BillStatus.CANCELLED.value
        bill.updated_by_id = actor_id
        self._session.flush()
        logger.info("bill_cancelled", extra={"bill_id": str(bill.id)})
        return bill

    def mark_overdue(self, *, tenant_id: str, company_id: str, as_of: date, actor_id: UUID) -> list[BillModel]:
        """Flag posted or partially paid bills whose due date has passed."""
        bills = list(
            self._session.execute(
                select(BillModel).where(
                    BillModel.tenant_id == tenant_id,
                    BillModel.company_id == company_id,
                    BillModel.status.in_([BillStatus.POSTED.value, BillStatus.PARTIALLY_PAID.value]),
                    BillModel.due_date.is_not(None),
                    BillModel.due_date < as_of,
                    BillModel.balance_due > _ZERO,
                )
            ).scalars()
        )
        for bill in bills:
            bill.status = BillStatus.OVERDUE.value
            bill.updated_by_id = actor_id
        self._session.flush()
        if bills:
            logger.info("bills_marked_overdue", extra={"company_id": company_id, "count": len(bills)})
        return bills
