"""
Three-way match tests.

Validates:
- Within-tolerance pairs are matched; others record an exception, never raise
- Company tolerance settings override the defaults per purchase type
- Exceptions are closed only by explicit resolve / approve / reject
- Quantity discrepancies against receipts are captured on the exception
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_engines.matching import DiscrepancyKind, MatchTolerance
from ledger_kernel.exceptions import (
    ConfigurationError,
    ImmutabilityViolationError,
    InvalidDocumentError,
    InvalidStatusTransitionError,
    MatchExceptionNotFoundError,
)
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.company_setting import CompanySetting
from ledger_modules.ap.models import PurchaseType
from ledger_modules.procurement.models import MatchStatus, PurchaseOrderStatus, ReceiptItemInput
from ledger_modules.procurement.orm import MatchExceptionModel
from tests.helpers import COMPANY_ID, TENANT_ID, TEST_ACTOR_ID, doc_line, po_line


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def product(make_product):
    return make_product(cost_price="100")


@pytest.fixture
def make_order(procurement_service, product):
    def _make(purchase_type=PurchaseType.LOCAL, number="PO-001"):
        order = procurement_service.create_purchase_order(
            tenant_id=TENANT_ID,
            company_id=COMPANY_ID,
            vendor_id="vendor-1",
            po_number=number,
            order_date=date(2025, 1, 6),
            lines=[po_line("Widgets", "10", "100.00", product.id)],
            actor_id=TEST_ACTOR_ID,
            purchase_type=purchase_type,
        )
        procurement_service.transition(
            tenant_id=TENANT_ID,
            company_id=COMPANY_ID,
            purchase_order_id=order.id,
            to_status=PurchaseOrderStatus.APPROVED,
            actor_id=TEST_ACTOR_ID,
        )
        return order

    return _make


@pytest.fixture
def make_bill(bill_service, product):
    def _make(unit_price, quantity="10", vendor_id="vendor-1", number="BILL-001"):
        return bill_service.create_bill(
            tenant_id=TENANT_ID,
            company_id=COMPANY_ID,
            vendor_id=vendor_id,
            bill_number=number,
            bill_date=date(2025, 1, 10),
            lines=[doc_line("Widgets", quantity, unit_price, product_id=product.id)],
            actor_id=TEST_ACTOR_ID,
        )

    return _make


def _match(match_service, order, bill):
    return match_service.match(
        tenant_id=TENANT_ID, company_id=COMPANY_ID, purchase_order_id=order.id, bill_id=bill.id, actor_id=TEST_ACTOR_ID
    )


# =============================================================================
# Tests
# =============================================================================


class TestMatch:

    def test_within_tolerance_matched(self, match_service, make_order, make_bill):
        order = make_order()
        bill = make_bill("101.50")

        result = _match(match_service, order, bill)

        assert result.matched
        assert result.diff == Decimal("15.00")
        assert result.exception_id is None
        assert order.match_status == MatchStatus.MATCHED
        assert order.matched_bill_id == bill.id
        assert bill.purchase_order_id == order.id

    def test_outside_tolerance_records_exception(self, kernel, match_service, make_order, make_bill, captured_logs):
        order = make_order()
        bill = make_bill("103.00")

        result = _match(match_service, order, bill)

        assert not result.matched
        assert result.status == MatchStatus.EXCEPTION
        assert order.match_status == MatchStatus.EXCEPTION
        (exception,) = match_service.list_open_exceptions(TENANT_ID, COMPANY_ID)
        assert exception.id == result.exception_id
        assert exception.pct_diff == Decimal("3.0000")
        (event,) = kernel.auditor.events_for_action(COMPANY_ID, AuditAction.THREE_WAY_MATCH_EXCEPTION)
        assert exception.audit_event_id == event.id
        assert any(r["message"] == "three_way_match_exception" for r in captured_logs())

    def test_quantity_discrepancies_captured(self, match_service, procurement_service, make_order, make_bill):
        order = make_order()
        procurement_service.record_receipt(
            tenant_id=TENANT_ID,
            company_id=COMPANY_ID,
            purchase_order_id=order.id,
            receipt_number="GRN-001",
            received_date=date(2025, 1, 8),
            items=[ReceiptItemInput(order.lines[0].id, Decimal("8"))],
            actor_id=TEST_ACTOR_ID,
        )
        bill = make_bill("110.00")

        result = _match(match_service, order, bill)

        kinds = {d.kind for d in result.discrepancies}
        assert DiscrepancyKind.BILLED_EXCEEDS_ACCEPTED in kinds
        assert result.receipt_total == Decimal("800.00")
        exception = match_service.list_open_exceptions(TENANT_ID, COMPANY_ID)[0]
        assert exception.discrepancies[0]["schema_version"] == 1

    def test_vendor_mismatch_rejected(self, match_service, make_order, make_bill):
        with pytest.raises(InvalidDocumentError):
            _match(match_service, make_order(), make_bill("100.00", vendor_id="vendor-2"))

    def test_exception_rows_append_only(self, session, match_service, make_order, make_bill):
        result = _match(match_service, make_order(), make_bill("150.00"))

        row = session.get(MatchExceptionModel, result.exception_id)
        row.diff = Decimal("0")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


    def test_exception_order_not_rematched(self, match_service, make_order, make_bill):
        order = make_order()
        first = make_bill("150.00")
        _match(match_service, order, first)
        second = make_bill("100.00", number="BILL-002")

        with pytest.raises(InvalidStatusTransitionError):
            _match(match_service, order, second)

        assert order.match_status == MatchStatus.EXCEPTION
        assert order.matched_bill_id == first.id
        assert second.purchase_order_id is None
        assert len(match_service.list_open_exceptions(TENANT_ID, COMPANY_ID)) == 1

    def test_bill_linked_to_other_order_rejected(self, match_service, make_order, make_bill):
        first_order = make_order()
        bill = make_bill("100.00")
        _match(match_service, first_order, bill)
        second_order = make_order(number="PO-002")

        with pytest.raises(InvalidDocumentError):
            _match(match_service, second_order, bill)

        assert bill.purchase_order_id == first_order.id
        assert second_order.match_status == MatchStatus.UNMATCHED
        assert second_order.matched_bill_id is None


class TestStockOnce:

    def _deliver(self, procurement_service, order):
        return procurement_service.deliver(
            tenant_id=TENANT_ID, company_id=COMPANY_ID, purchase_order_id=order.id, actor_id=TEST_ACTOR_ID
        )

    def _post(self, bill_service, bill):
        return bill_service.post_bill(
            tenant_id=TENANT_ID, company_id=COMPANY_ID, bill_id=bill.id, actor_id=TEST_ACTOR_ID
        )

    def test_posted_unlinked_bill_refused(
        self, standard_accounts, match_service, bill_service, procurement_service, product, make_order, make_bill
    ):
        order = make_order()
        bill = make_bill("100.00")
        self._post(bill_service, bill)
        assert product.stock_quantity == Decimal("10")

        with pytest.raises(InvalidDocumentError):
            _match(match_service, order, bill)

        assert bill.purchase_order_id is None
        assert order.match_status == MatchStatus.UNMATCHED
        assert product.stock_quantity == Decimal("10")

    def test_bill_matched_before_posting_stocks_once(
        self, standard_accounts, match_service, bill_service, procurement_service, product, make_order, make_bill
    ):
        order = make_order()
        bill = make_bill("100.00")
        _match(match_service, order, bill)

        posted = self._post(bill_service, bill)
        self._deliver(procurement_service, order)

        assert posted.movement_count == 0
        assert product.stock_quantity == Decimal("10")


class TestTolerance:

    def test_defaults(self, match_service):
        assert match_service.resolve_tolerance(TENANT_ID, COMPANY_ID, PurchaseType.LOCAL) == MatchTolerance(
            pct=Decimal("2"), abs=Decimal("5")
        )

    def test_company_setting_per_purchase_type(self, match_service, make_order, make_bill):
        match_service.set_company_tolerance(
            tenant_id=TENANT_ID,
            company_id=COMPANY_ID,
            purchase_type=PurchaseType.IMPORT,
            tolerance=MatchTolerance(pct=Decimal("5"), abs=Decimal("0")),
            actor_id=TEST_ACTOR_ID,
        )

        local = _match(match_service, make_order(), make_bill("103.00"))
        imported = _match(
            match_service,
            make_order(PurchaseType.IMPORT, number="PO-002"),
            make_bill("103.00", number="BILL-002"),
        )

        assert not local.matched
        assert imported.matched
        assert imported.tolerance.pct == Decimal("5")

    def test_setting_updated_in_place(self, match_service):
        for pct in ("3", "4"):
            match_service.set_company_tolerance(
                tenant_id=TENANT_ID,
                company_id=COMPANY_ID,
                purchase_type=PurchaseType.LOCAL,
                tolerance=MatchTolerance(pct=Decimal(pct), abs=Decimal("1")),
                actor_id=TEST_ACTOR_ID,
            )

        tolerance = match_service.resolve_tolerance(TENANT_ID, COMPANY_ID, PurchaseType.LOCAL)
        assert tolerance == MatchTolerance(pct=Decimal("4"), abs=Decimal("1"))

    def test_malformed_setting_rejected(self, session, match_service):
        session.add(
            CompanySetting(
                tenant_id=TENANT_ID,
                company_id=COMPANY_ID,
                key="three_way_tolerance_pct_local",
                value="two percent",
                created_by_id=TEST_ACTOR_ID,
            )
        )
        session.flush()

        with pytest.raises(ConfigurationError):
            match_service.resolve_tolerance(TENANT_ID, COMPANY_ID, PurchaseType.LOCAL)


class TestExceptionResolution:

    @pytest.fixture
    def exception_order(self, match_service, make_order, make_bill):
        order = make_order()
        _match(match_service, order, make_bill("150.00"))
        return order

    @pytest.mark.parametrize(
        "method, status, action",
        [
            ("resolve_exception", MatchStatus.RESOLVED, AuditAction.THREE_WAY_MATCH_EXCEPTION_RESOLVED),
            ("approve_exception", MatchStatus.RESOLVED, AuditAction.THREE_WAY_MATCH_EXCEPTION_APPROVED),
            ("reject_exception", MatchStatus.REJECTED, AuditAction.THREE_WAY_MATCH_EXCEPTION_REJECTED),
        ],
    )
    def test_close_exception(self, kernel, match_service, exception_order, method, status, action):
        resolution = getattr(match_service, method)(
            tenant_id=TENANT_ID,
            company_id=COMPANY_ID,
            purchase_order_id=exception_order.id,
            actor_id=TEST_ACTOR_ID,
            note="Price increase agreed by phone",
        )

        assert exception_order.match_status == status
        assert match_service.list_open_exceptions(TENANT_ID, COMPANY_ID) == []
        (event,) = kernel.auditor.events_for_action(COMPANY_ID, action)
        assert resolution.audit_event_id == event.id

    def test_resolution_rows_append_only(self, session, match_service, exception_order):
        resolution = match_service.approve_exception(
            tenant_id=TENANT_ID, company_id=COMPANY_ID, purchase_order_id=exception_order.id, actor_id=TEST_ACTOR_ID
        )

        resolution.note = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_second_resolution_has_nothing_open(self, match_service, exception_order):
        match_service.resolve_exception(
            tenant_id=TENANT_ID, company_id=COMPANY_ID, purchase_order_id=exception_order.id, actor_id=TEST_ACTOR_ID
        )

        with pytest.raises(MatchExceptionNotFoundError):
            match_service.resolve_exception(
                tenant_id=TENANT_ID, company_id=COMPANY_ID, purchase_order_id=exception_order.id, actor_id=TEST_ACTOR_ID
            )

    def test_matched_order_has_no_exception(self, match_service, make_order, make_bill):
        order = make_order()
        _match(match_service, order, make_bill("100.00"))

        with pytest.raises(MatchExceptionNotFoundError):
            match_service.reject_exception(
                tenant_id=TENANT_ID, company_id=COMPANY_ID, purchase_order_id=order.id, actor_id=TEST_ACTOR_ID
            )
