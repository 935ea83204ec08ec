"""
Bill posting tests.

Validates:
- Journal shape: Dr INVENTORY / EXPENSE per line, landed costs, Cr AP total
- PURCHASE movements only for bills not linked to a purchase order
- Status guard, period guard and account resolution happen before writes
- Draft-only cancellation and overdue marking
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_engines.landed_cost import LandedCostCharges
from ledger_kernel.domain.dtos import PeriodOverride
from ledger_kernel.exceptions import (
    AlreadyPostedError,
    InvalidDocumentError,
    InvalidStatusTransitionError,
    MissingAccountsError,
    PeriodLockedError,
)
from ledger_kernel.models.account import AccountPurpose
from ledger_kernel.models.accounting_period import PeriodStatus
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_modules.ap.models import BillStatus, PurchaseType
from ledger_modules.inventory.models import ProductType
from tests.helpers import (
    COMPANY_ID,
    TENANT_ID,
    TEST_ACTOR_ID,
    doc_line,
    lines_by_account,
    seed_chart_of_accounts,
)

BILL_DATE = date(2025, 1, 10)


def _create(bill_service, lines, **kwargs):
    params = dict(
        tenant_id=TENANT_ID,
        company_id=COMPANY_ID,
        vendor_id="vendor-1",
        bill_number=kwargs.pop("bill_number", "BILL-001"),
        bill_date=kwargs.pop("bill_date", BILL_DATE),
        lines=lines,
        actor_id=TEST_ACTOR_ID,
    )
    params.update(kwargs)
    return bill_service.create_bill(**params)


def _post(bill_service, bill, **kwargs):
    return bill_service.post_bill(
        tenant_id=TENANT_ID, company_id=COMPANY_ID, bill_id=bill.id, actor_id=TEST_ACTOR_ID, **kwargs
    )


def _journal_row_counts(session) -> tuple[int, int]:
    entries = session.scalar(select(func.count(JournalEntry.id)))
    lines = session.scalar(select(func.count(JournalLine.id)))
    return entries, lines


class TestCreateBill:

    def test_totals_computed_per_line(self, bill_service):
        bill = _create(
            bill_service,
            [
                doc_line("Paper", "3", "3.333", tax_rate_pct=Decimal("10")),
                doc_line("Pens", "1", "5.00"),
            ],
        )

        assert bill.subtotal == Decimal("15.00")
        assert bill.tax_total == Decimal("1.00")
        assert bill.total_amount == Decimal("16.00")
        assert bill.balance_due == bill.total_amount
        assert bill.status == BillStatus.DRAFT

    def test_no_lines_rejected(self, bill_service):
        with pytest.raises(InvalidDocumentError):
            _create(bill_service, [])

    def test_landed_costs_on_local_bill_rejected(self, bill_service):
        with pytest.raises(InvalidDocumentError):
            _create(
                bill_service,
                [doc_line("Goods", "1", "10")],
                landed_costs=LandedCostCharges(freight=Decimal("5")),
            )

    def test_inventory_flag_follows_product_type(self, bill_service, make_product):
        stocked = make_product()
        service = make_product(product_type=ProductType.SERVICE)

        bill = _create(
            bill_service,
            [
                doc_line("Stocked", "1", "10", product_id=stocked.id),
                doc_line("Service", "1", "10", product_id=service.id),
            ],
        )

        assert [line.is_inventory for line in bill.lines] == [True, False]

    def test_summary(self, bill_service):
        bill = _create(bill_service, [doc_line("Goods", "2", "10")])

        summary = bill.to_summary()
        assert summary.bill_number == "BILL-001"
        assert summary.total_amount == Decimal("20.00")
        assert summary.landed_cost_total == Decimal("0")


class TestPostBill:

    def test_journal_shape(self, session, bill_service, standard_accounts, make_product):
        product = make_product(cost_price="5")
        bill = _create(
            bill_service,
            [
                doc_line("Widgets", "10", "5.00", product_id=product.id, tax_rate_pct=Decimal("10")),
                doc_line("Consulting", "1", "100.00"),
            ],
        )

        result = _post(bill_service, bill)

        assert result.status == BillStatus.POSTED
        assert result.total_amount == Decimal("155.00")
        assert result.period_key == "2025-01"
        totals = lines_by_account(session, result.journal_entry_id)
        assert totals == {
            standard_accounts[AccountPurpose.INVENTORY]: (Decimal("55.00"), Decimal("0")),
            standard_accounts[AccountPurpose.EXPENSE]: (Decimal("100.00"), Decimal("0")),
            standard_accounts[AccountPurpose.AP]: (Decimal("0"), Decimal("155.00")),
        }

    def test_unlinked_bill_receives_stock(self, bill_service, standard_accounts, inventory, make_product):
        product = make_product()
        bill = _create(bill_service, [doc_line("Widgets", "10", "5.00", product_id=product.id)])

        result = _post(bill_service, bill)

        assert result.movement_count == 1
        assert product.stock_quantity == Decimal("10")
        (movement,) = inventory.movements(TENANT_ID, COMPANY_ID, product.id)
        assert movement.unit_cost == Decimal("5.00")
        assert movement.reference == "BILL-001"

    def test_bill_linked_to_order_moves_no_stock(self, bill_service, standard_accounts, make_product):
        product = make_product()
        bill = _create(
            bill_service,
            [doc_line("Widgets", "10", "5.00", product_id=product.id)],
            purchase_order_id=uuid4(),
        )

        result = _post(bill_service, bill)

        assert result.movement_count == 0
        assert product.stock_quantity == Decimal("0")

    def test_unallocated_landed_costs_expensed(self, session, bill_service, standard_accounts, make_product):
        product = make_product()
        bill = _create(
            bill_service,
            [doc_line("Imported", "10", "10.00", product_id=product.id)],
            purchase_type=PurchaseType.IMPORT,
            landed_costs=LandedCostCharges(freight=Decimal("20")),
        )

        result = _post(bill_service, bill)

        totals = lines_by_account(session, result.journal_entry_id)
        assert totals[standard_accounts[AccountPurpose.INVENTORY]] == (Decimal("100.00"), Decimal("0"))
        assert totals[standard_accounts[AccountPurpose.EXPENSE]] == (Decimal("20.00"), Decimal("0"))
        assert totals[standard_accounts[AccountPurpose.AP]] == (Decimal("0"), Decimal("120.00"))

    def test_posting_audited(self, kernel, bill_service, standard_accounts):
        bill = _create(bill_service, [doc_line("Goods", "1", "10")])

        _post(bill_service, bill)

        (event,) = kernel.auditor.events_for_action(COMPANY_ID, AuditAction.DOCUMENT_POSTED)
        assert event.entity_id == bill.id
        assert Decimal(event.payload["totalAmount"]) == Decimal("10.00")
        assert event.payload["overridden"] is False

    def test_posted_log_emitted(self, bill_service, standard_accounts, captured_logs):
        bill = _create(bill_service, [doc_line("Goods", "1", "10")])

        _post(bill_service, bill)

        assert any(r["message"] == "bill_posted" for r in captured_logs())

    def test_second_post_rejected(self, session, bill_service, standard_accounts):
        bill = _create(bill_service, [doc_line("Goods", "1", "10")])
        _post(bill_service, bill)
        lines_before = _journal_row_counts(session)

        with pytest.raises(AlreadyPostedError):
            _post(bill_service, bill)

        assert _journal_row_counts(session) == lines_before
        assert bill.status == BillStatus.POSTED

    def test_missing_account_rejected_before_writes(self, session, bill_service):
        seed_chart_of_accounts(session, skip=(AccountPurpose.AP,))
        bill = _create(bill_service, [doc_line("Goods", "1", "10")])

        with pytest.raises(MissingAccountsError) as exc_info:
            _post(bill_service, bill)

        assert "ap" in exc_info.value.purposes
        assert bill.status == BillStatus.DRAFT
        assert bill.journal_entry_id is None

    def test_locked_period_requires_override(self, kernel, bill_service, standard_accounts):
        kernel.period_guard.set_status(
            tenant_id=TENANT_ID, company_id=COMPANY_ID, period_key="2025-01",
            status=PeriodStatus.LOCKED, actor_id=TEST_ACTOR_ID,
        )
        bill = _create(bill_service, [doc_line("Goods", "1", "10")])

        with pytest.raises(PeriodLockedError):
            _post(bill_service, bill)
        assert bill.status == BillStatus.DRAFT

        result = _post(bill_service, bill, override=PeriodOverride(True, "Vendor invoice received late"))
        assert result.override_audit_event_id is not None


class TestLifecycle:

    def test_cancel_draft(self, bill_service):
        bill = _create(bill_service, [doc_line("Goods", "1", "10")])

        bill_service.cancel_bill(tenant_id=TENANT_ID, company_id=COMPANY_ID, bill_id=bill.id, actor_id=TEST_ACTOR_ID)

        assert bill.status == BillStatus.CANCELLED
        with pytest.raises(AlreadyPostedError):
            _post(bill_service, bill)

    def test_posted_bill_cannot_be_cancelled(self, bill_service, standard_accounts):
        bill = _create(bill_service, [doc_line("Goods", "1", "10")])
        _post(bill_service, bill)

        with pytest.raises(InvalidStatusTransitionError):
            bill_service.cancel_bill(
                tenant_id=TENANT_ID, company_id=COMPANY_ID, bill_id=bill.id, actor_id=TEST_ACTOR_ID
            )

    def test_mark_overdue(self, bill_service, standard_accounts):
        late = _create(bill_service, [doc_line("Goods", "1", "10")], due_date=date(2025, 1, 20))
        current = _create(
            bill_service, [doc_line("Goods", "1", "10")], bill_number="BILL-002", due_date=date(2025, 3, 1)
        )
        draft = _create(bill_service, [doc_line("Goods", "1", "10")], bill_number="BILL-003", due_date=date(2025, 1, 1))
        _post(bill_service, late)
        _post(bill_service, current)

        marked = bill_service.mark_overdue(
            tenant_id=TENANT_ID, company_id=COMPANY_ID, as_of=date(2025, 2, 1), actor_id=TEST_ACTOR_ID
        )

        assert [bill.id for bill in marked] == [late.id]
        assert late.status == BillStatus.OVERDUE
        assert draft.status == BillStatus.DRAFT
