"""
End-to-end posting scenarios through the orchestrator.

Each scenario runs the public entrypoints exactly as a caller would: one
unit of work per call, results re-read from a fresh view of the database.

Validates:
- Landed cost allocation on an import bill, then capitalization at posting
- Three-way match inside the company tolerance
- Default payment application against a partly settled invoice
- Rejected outbound movement leaves stock untouched
- Locked period posting with and without an override
- Every journal entry written across the scenarios balances
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from ledger_engines.landed_cost import LandedCostCharges
from ledger_engines.matching import MatchTolerance
from ledger_engines.stock import MovementType
from ledger_kernel.domain.dtos import PeriodOverride
from ledger_kernel.exceptions import InsufficientStockError, InvalidOverrideError, PeriodLockedError
from ledger_kernel.models.account import AccountPurpose
from ledger_kernel.models.accounting_period import PeriodStatus
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.services.auditor_service import AuditorService
from ledger_modules._posting_helpers import DocumentStatus
from ledger_modules.ap.models import PurchaseType
from ledger_modules.ap.orm import BillModel
from ledger_modules.ar.orm import InvoiceModel
from ledger_modules.cash.models import PaymentDirection
from ledger_modules.inventory.orm import ProductModel
from ledger_modules.procurement.models import MatchStatus, PurchaseOrderStatus
from tests.helpers import COMPANY_ID, TENANT_ID, TEST_ACTOR_ID, doc_line, lines_by_account, po_line

DOC_DATE = date(2025, 1, 10)


def _context(orchestrator):
    return orchestrator.context(tenant_id=TENANT_ID, company_id=COMPANY_ID, actor_id=TEST_ACTOR_ID)


def _all_entries_balance(session):
    entries = session.execute(select(JournalEntry)).scalars().all()
    return all(entry.is_balanced for entry in entries)


class TestImportBillWithLandedCosts:

    def test_allocation_then_posting(self, session, orchestrator, standard_accounts, make_product):
        first = make_product(cost_price="5")
        second = make_product(cost_price="10")
        with _context(orchestrator) as ctx:
            bill = ctx.bills.create_bill(
                tenant_id=TENANT_ID,
                company_id=COMPANY_ID,
                vendor_id="vendor-1",
                bill_number="IMP-001",
                bill_date=DOC_DATE,
                lines=[
                    doc_line("Widgets", "10", "5.00", product_id=first.id),
                    doc_line("Gadgets", "5", "10.00", product_id=second.id),
                ],
                actor_id=TEST_ACTOR_ID,
                purchase_type=PurchaseType.IMPORT,
                landed_costs=LandedCostCharges(freight=Decimal("8"), customs=Decimal("2")),
            )
            allocation = ctx.landed_cost.allocate(
                tenant_id=TENANT_ID, company_id=COMPANY_ID, bill_id=bill.id, actor_id=TEST_ACTOR_ID
            )

        assert [a.share for a in allocation.allocations] == [Decimal("5.00"), Decimal("5.00")]
        assert [a.per_unit_increment for a in allocation.allocations] == [Decimal("0.5"), Decimal("1")]

        result = orchestrator.post_bill(
            tenant_id=TENANT_ID, company_id=COMPANY_ID, bill_id=bill.id, actor_id=TEST_ACTOR_ID
        )

        session.expire_all()
        assert session.get(ProductModel, first.id).cost_price == Decimal("5.5")
        assert session.get(ProductModel, second.id).cost_price == Decimal("11")
        assert session.get(ProductModel, first.id).stock_quantity == Decimal("10")
        lines = lines_by_account(session, result.journal_entry_id)
        assert lines[standard_accounts[AccountPurpose.INVENTORY]] == (Decimal("110.00"), Decimal("0"))
        assert lines[standard_accounts[AccountPurpose.AP]] == (Decimal("0"), Decimal("110.00"))
        assert _all_entries_balance(session)


class TestThreeWayMatchWithinTolerance:

    def test_po_and_bill_matched(self, session, orchestrator, job_queue, standard_accounts):
        with _context(orchestrator) as ctx:
            ctx.matching.set_company_tolerance(
                tenant_id=TENANT_ID,
                company_id=COMPANY_ID,
                purchase_type=PurchaseType.LOCAL,
                tolerance=MatchTolerance(pct=Decimal("2"), abs=Decimal("5")),
                actor_id=TEST_ACTOR_ID,
            )
            order = ctx.procurement.create_purchase_order(
                tenant_id=TENANT_ID,
                company_id=COMPANY_ID,
                vendor_id="vendor-1",
                po_number="PO-001",
                order_date=date(2025, 1, 6),
                lines=[po_line("Supplies", "1", "1000.00")],
                actor_id=TEST_ACTOR_ID,
            )
            ctx.procurement.transition(
                tenant_id=TENANT_ID,
                company_id=COMPANY_ID,
                purchase_order_id=order.id,
                to_status=PurchaseOrderStatus.APPROVED,
                actor_id=TEST_ACTOR_ID,
            )
            bill = ctx.bills.create_bill(
                tenant_id=TENANT_ID,
                company_id=COMPANY_ID,
                vendor_id="vendor-1",
                bill_number="BILL-001",
                bill_date=DOC_DATE,
                lines=[doc_line("Supplies", "1", "1015.00")],
                actor_id=TEST_ACTOR_ID,
            )

        result = orchestrator.match_purchase_order(
            tenant_id=TENANT_ID,
            company_id=COMPANY_ID,
            purchase_order_id=order.id,
            bill_id=bill.id,
            actor_id=TEST_ACTOR_ID,
        )

        assert result.status == MatchStatus.MATCHED
        assert result.diff == Decimal("15.00")
        assert result.pct_diff == Decimal("1.5")
        assert result.exception_id is None
        assert job_queue.webhook_events() == []
        with _context(orchestrator) as ctx:
            assert ctx.matching.list_open_exceptions(TENANT_ID, COMPANY_ID) == []


class TestDefaultPaymentApplication:

    def test_partial_payment_against_oldest_invoice(self, session, orchestrator, standard_accounts):
        with _context(orchestrator) as ctx:
            invoice = ctx.invoices.create_invoice(
                tenant_id=TENANT_ID,
                company_id=COMPANY_ID,
                customer_id="customer-1",
                invoice_number="INV-001",
                invoice_date=date(2025, 1, 5),
                lines=[doc_line("Consulting", "1", "500.00")],
                actor_id=TEST_ACTOR_ID,
            )
        orchestrator.post_invoice(
            tenant_id=TENANT_ID, company_id=COMPANY_ID, invoice_id=invoice.id, actor_id=TEST_ACTOR_ID
        )

        result = orchestrator.record_payment(
            tenant_id=TENANT_ID,
            company_id=COMPANY_ID,
            direction=PaymentDirection.RECEIVABLE,
            amount=Decimal("300"),
            actor_id=TEST_ACTOR_ID,
            payment_date=date(2025, 1, 20),
            counterparty_id="customer-1",
        )

        (application,) = result.applications
        assert application.document_id == invoice.id
        assert application.amount_applied == Decimal("300.00")
        assert result.unapplied_amount == Decimal("0")
        session.expire_all()
        stored = session.get(InvoiceModel, invoice.id)
        assert stored.balance_due == Decimal("200.00")
        assert stored.status == DocumentStatus.PARTIALLY_PAID
        assert _all_entries_balance(session)


class TestInsufficientStock:

    def test_outbound_rejected_and_stock_unchanged(self, session, orchestrator, make_product):
        product = make_product(cost_price="4", stock="15")

        with pytest.raises(InsufficientStockError):
            with _context(orchestrator) as ctx:
                ctx.inventory.record_movement(
                    tenant_id=TENANT_ID,
                    company_id=COMPANY_ID,
                    product_id=product.id,
                    movement_type=MovementType.OUTBOUND,
                    quantity=Decimal("20"),
                    unit_cost=Decimal("4"),
                    actor_id=TEST_ACTOR_ID,
                )

        session.expire_all()
        assert session.get(ProductModel, product.id).stock_quantity == Decimal("15")


class TestLockedPeriodOverride:

    @pytest.fixture
    def locked_bill(self, orchestrator, standard_accounts):
        with _context(orchestrator) as ctx:
            ctx.kernel.period_guard.set_status(
                tenant_id=TENANT_ID,
                company_id=COMPANY_ID,
                period_key="2025-01",
                status=PeriodStatus.LOCKED,
                actor_id=TEST_ACTOR_ID,
            )
            return ctx.bills.create_bill(
                tenant_id=TENANT_ID,
                company_id=COMPANY_ID,
                vendor_id="vendor-1",
                bill_number="LATE-001",
                bill_date=DOC_DATE,
                lines=[doc_line("Late delivery", "1", "80.00")],
                actor_id=TEST_ACTOR_ID,
            )

    def _post(self, orchestrator, bill, override=None):
        return orchestrator.post_bill(
            tenant_id=TENANT_ID, company_id=COMPANY_ID, bill_id=bill.id, actor_id=TEST_ACTOR_ID, override=override
        )

    def test_rejected_without_override(self, session, orchestrator, job_queue, locked_bill):
        with pytest.raises(PeriodLockedError):
            self._post(orchestrator, locked_bill)

        session.expire_all()
        assert session.get(BillModel, locked_bill.id).status == DocumentStatus.DRAFT
        assert len(job_queue) == 0

    def test_short_justification_rejected(self, orchestrator, locked_bill):
        with pytest.raises(InvalidOverrideError):
            self._post(orchestrator, locked_bill, PeriodOverride(True, "late"))

    def test_override_posts_with_one_audit_record(self, session, orchestrator, locked_bill):
        result = self._post(orchestrator, locked_bill, PeriodOverride(True, "Vendor invoice received after close"))

        session.expire_all()
        assert session.get(BillModel, locked_bill.id).status == DocumentStatus.POSTED
        auditor = AuditorService(session)
        (event,) = auditor.events_for_action(COMPANY_ID, AuditAction.PRIOR_PERIOD_OVERRIDE)
        assert event.id == result.override_audit_event_id
        assert event.payload["adjustmentType"] == "prior_period_override"
        assert event.payload["periodKey"] == "2025-01"
        assert auditor.validate_chain()
