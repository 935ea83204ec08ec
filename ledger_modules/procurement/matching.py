"""
ThreeWayMatchService -- reconciles a purchase order, its receipts and a bill.

Responsibility:
    Links a bill to its purchase order and classifies the pair as matched
    or as an exception by comparing totals within tolerance.  Exceptions
    are recorded, never raised: the link always succeeds.

Tolerance resolution (per company, by the order's purchase type):
    1. company settings ``three_way_tolerance_pct_<type>`` and
       ``three_way_tolerance_abs_<type>`` (type is ``local`` or ``import``)
    2. the engine defaults passed in (environment, then YAML)
    3. 2% / 5 currency units

State machine (``PurchaseOrderModel.match_status``):
    unmatched -> matched | exception
    exception -> resolved | rejected   (explicit action only)

Only an unmatched order can be matched; a second bill never replaces the
first.  A posted bill that was not linked to an order already stocked its
goods, so it is refused rather than letting delivery receive them again.

Audit relevance:
    Every exception and every resolution/approval/rejection writes its own
    audit event.  The MatchException row itself is never modified.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

from sqlalchemy import select

from ledger_engines.matching import (
    DISCREPANCY_SCHEMA_VERSION,
    MatchTolerance,
    compare_totals,
    find_quantity_discrepancies,
)
from ledger_kernel.db.types import round_money
from ledger_kernel.exceptions import (
    ConfigurationError,
    InvalidDocumentError,
    InvalidStatusTransitionError,
    MatchExceptionNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.company_setting import CompanySetting
from ledger_modules._posting_helpers import DocumentStatus, PostingKernel, load_scoped
from ledger_modules.ap.models import PurchaseType
from ledger_modules.ap.orm import BillModel
from ledger_modules.ap.service import DOCUMENT_TYPE as BILL_DOCUMENT_TYPE
from ledger_modules.inventory.orm import InventoryMovementModel
from ledger_modules.procurement.models import MatchResult, MatchStatus, ResolutionAction
from ledger_modules.procurement.orm import (
    MatchExceptionModel,
    MatchResolutionModel,
    PurchaseOrderModel,
)
from ledger_modules.procurement.service import accepted_by_line

logger = get_logger("modules.procurement.matching")

DEFAULT_TOLERANCE = MatchTolerance(pct=Decimal("2"), abs=Decimal("5"))

_ZERO = Decimal("0")

_RESOLUTION_AUDIT = {
    ResolutionAction.RESOLVED: AuditAction.THREE_WAY_MATCH_EXCEPTION_RESOLVED,
    ResolutionAction.APPROVED: AuditAction.THREE_WAY_MATCH_EXCEPTION_APPROVED,
    ResolutionAction.REJECTED: AuditAction.THREE_WAY_MATCH_EXCEPTION_REJECTED,
}

_RESOLUTION_STATUS = {
    ResolutionAction.RESOLVED: MatchStatus.RESOLVED,
    ResolutionAction.APPROVED: MatchStatus.RESOLVED,
    ResolutionAction.REJECTED: MatchStatus.REJECTED,
}


def tolerance_setting_keys(purchase_type: PurchaseType) -> tuple[str, str]:
    suffix = PurchaseType(purchase_type).value
    return f"three_way_tolerance_pct_{suffix}", f"three_way_tolerance_abs_{suffix}"


class ThreeWayMatchService:
    def __init__(self, kernel: PostingKernel, default_tolerance: MatchTolerance | None = None):
        self._kernel = kernel
        self._session = kernel.session
        self._default = default_tolerance or DEFAULT_TOLERANCE

    # =========================================================================
    # Tolerance
    # =========================================================================

    def _setting(self, tenant_id: str, company_id: str, key: str) -> Decimal | None:
        raw = self._session.execute(
            select(CompanySetting.value).where(
                CompanySetting.tenant_id == tenant_id,
                CompanySetting.company_id == company_id,
                CompanySetting.key == key,
            )
        ).scalar_one_or_none()
        if raw is None or not raw.strip():
            return None
        try:
            value = Decimal(raw.strip())
        except InvalidOperation as exc:
            raise ConfigurationError(key, f"not a decimal: {raw!r}") from exc
        if value < _ZERO:
            raise ConfigurationError(key, "must not be negative")
        return value

    def resolve_tolerance(self, tenant_id: str, company_id: str, purchase_type: PurchaseType) -> MatchTolerance:
        pct_key, abs_key = tolerance_setting_keys(purchase_type)
        pct = self._setting(tenant_id, company_id, pct_key)
        absolute = self._setting(tenant_id, company_id, abs_key)
        return MatchTolerance(
            pct=self._default.pct if pct is None else pct,
            abs=self._default.abs if absolute is None else absolute,
        )

    def set_company_tolerance(
        self,
        *,
        tenant_id: str,
        company_id: str,
        purchase_type: PurchaseType,
        tolerance: MatchTolerance,
        actor_id: UUID,
    ) -> None:
        """Store the company's tolerance pair for one purchase type."""
        for key, value in zip(tolerance_setting_keys(purchase_type), (tolerance.pct, tolerance.abs)):
            setting = self._session.execute(
                select(CompanySetting).where(
                    CompanySetting.tenant_id == tenant_id,
                    CompanySetting.company_id == company_id,
                    CompanySetting.key == key,
                )
            ).scalar_one_or_none()
            if setting is None:
                self._session.add(
                    CompanySetting(
                        tenant_id=tenant_id,
                        company_id=company_id,
                        key=key,
                        value=str(value),
                        created_by_id=actor_id,
                    )
                )
            else:
                setting.value = str(value)
                setting.updated_by_id = actor_id
        self._session.flush()

    # =========================================================================
    # Matching
    # =========================================================================

    def match(
        self,
        *,
        tenant_id: str,
        company_id: str,
        purchase_order_id: UUID,
        bill_id: UUID,
        actor_id: UUID,
    ) -> MatchResult:
        """
        Link the bill to the order and classify the pair.

        Raises:
            DocumentNotFoundError: Unknown order or bill.
            InvalidDocumentError: Vendor mismatch, cancelled documents, a bill
                linked to another order, or a posted bill that already
                received its stock.
            InvalidStatusTransitionError: The order was already matched.
        """
        order = load_scoped(
            self._session, PurchaseOrderModel, purchase_order_id, tenant_id, company_id,
            document_type="PurchaseOrder", for_update=True,
        )
        bill = load_scoped(
            self._session, BillModel, bill_id, tenant_id, company_id,
            document_type="Bill", for_update=True,
        )
        if order.vendor_id != bill.vendor_id:
            raise InvalidDocumentError("Bill", "bill vendor differs from the purchase order vendor")
        if "cancelled" in (order.status, bill.status):
            raise InvalidDocumentError("Bill", "cancelled documents cannot be matched")
        if order.match_status != MatchStatus.UNMATCHED.value:
            raise InvalidStatusTransitionError(
                "PurchaseOrderMatch", str(order.id), order.match_status, MatchStatus.MATCHED.value
            )
        if bill.purchase_order_id not in (None, order.id):
            raise InvalidDocumentError("Bill", "bill is already linked to another purchase order")
        if bill.purchase_order_id is None and self._received_stock_on_posting(bill):
            raise InvalidDocumentError(
                "Bill", "bill already received its goods when posted; delivery would stock them twice"
            )

        purchase_type = PurchaseType(order.purchase_type)
        tolerance = self.resolve_tolerance(tenant_id, company_id, purchase_type)
        comparison = compare_totals(
            po_total=order.total_amount,
            bill_total=bill.total_amount,
            tolerance=tolerance,
        )

        accepted_lines = accepted_by_line(order)
        receipt_total = round_money(
            sum((accepted_lines.get(line.id, _ZERO) * line.unit_price for line in order.lines), _ZERO)
        )
        ordered: dict[str, Decimal] = {}
        accepted: dict[str, Decimal] = {}
        for line in order.lines:
            ordered[line.item_key] = ordered.get(line.item_key, _ZERO) + line.quantity
            accepted[line.item_key] = accepted.get(line.item_key, _ZERO) + accepted_lines.get(line.id, _ZERO)
        billed: dict[str, Decimal] = {}
        for bill_line in bill.lines:
            key = str(bill_line.product_id) if bill_line.product_id else bill_line.description
            billed[key] = billed.get(key, _ZERO) + bill_line.quantity
        discrepancies = find_quantity_discrepancies(
            ordered, accepted, billed, has_receipts=bool(order.receipts)
        )

        bill.purchase_order_id = order.id
        bill.updated_by_id = actor_id
        order.matched_bill_id = bill.id
        order.updated_by_id = actor_id

        exception_id: UUID | None = None
        if comparison.within_tolerance:
            status = MatchStatus.MATCHED
        else:
            status = MatchStatus.EXCEPTION
            exception_id = self._record_exception(
                order, bill, comparison, receipt_total, discrepancies, actor_id
            )
        order.match_status = status.value
        self._session.flush()

        logger.info(
            "three_way_match_evaluated",
            extra={
                "purchase_order_id": str(order.id),
                "bill_id": str(bill.id),
                "po_total": comparison.po_total,
                "bill_total": comparison.bill_total,
                "diff": comparison.diff,
                "pct_diff": comparison.pct_diff,
                "tolerance_pct": tolerance.pct,
                "tolerance_abs": tolerance.abs,
                "match_status": status.value,
                "discrepancy_count": len(discrepancies),
            },
        )
        return MatchResult(
            purchase_order_id=order.id,
            bill_id=bill.id,
            po_total=comparison.po_total,
            bill_total=comparison.bill_total,
            receipt_total=receipt_total,
            comparison=comparison,
            status=status,
            exception_id=exception_id,
            discrepancies=discrepancies,
        )

    def _received_stock_on_posting(self, bill: BillModel) -> bool:
        if bill.status == DocumentStatus.DRAFT.value:
            return False
        movement_id = self._session.execute(
            select(InventoryMovementModel.id)
            .where(
                InventoryMovementModel.reference_type == BILL_DOCUMENT_TYPE,
                InventoryMovementModel.reference_id == bill.id,
            )
            .limit(1)
        ).scalar_one_or_none()
        return movement_id is not None

    def _record_exception(self, order, bill, comparison, receipt_total, discrepancies, actor_id) -> UUID:
        exception_id = uuid4()
        records = [d.to_record() for d in discrepancies]
        audit = self._kernel.auditor.record(
            tenant_id=order.tenant_id,
            company_id=order.company_id,
            entity_type="PurchaseOrder",
            entity_id=order.id,
            action=AuditAction.THREE_WAY_MATCH_EXCEPTION,
            actor_id=actor_id,
            payload={
                "exceptionId": exception_id,
                "billId": bill.id,
                "poTotal": comparison.po_total,
                "billTotal": comparison.bill_total,
                "diff": comparison.diff,
                "pctDiff": comparison.pct_diff,
                "tolerancePct": comparison.tolerance.pct,
                "toleranceAbs": comparison.tolerance.abs,
                "discrepancies": records,
            },
        )
        self._session.add(
            MatchExceptionModel(
                id=exception_id,
                tenant_id=order.tenant_id,
                company_id=order.company_id,
                purchase_order_id=order.id,
                bill_id=bill.id,
                purchase_type=order.purchase_type,
                po_total=comparison.po_total,
                bill_total=comparison.bill_total,
                receipt_total=receipt_total,
                diff=comparison.diff,
                pct_diff=comparison.pct_diff,
                tolerance_pct=comparison.tolerance.pct,
                tolerance_abs=comparison.tolerance.abs,
                discrepancies=records,
                schema_version=DISCREPANCY_SCHEMA_VERSION,
                detected_at=self._kernel.clock.now(),
                audit_event_id=audit.id,
                created_by_id=actor_id,
            )
        )
        self._session.flush()
        logger.warning(
            "three_way_match_exception",
            extra={
                "purchase_order_id": str(order.id),
                "bill_id": str(bill.id),
                "diff": comparison.diff,
                "pct_diff": comparison.pct_diff,
            },
        )
        return exception_id

    # =========================================================================
    # Exception handling
    # =========================================================================

    def _open_exceptions_query(self, tenant_id: str, company_id: str):
        resolved = select(MatchResolutionModel.exception_id)
        return select(MatchExceptionModel).where(
            MatchExceptionModel.tenant_id == tenant_id,
            MatchExceptionModel.company_id == company_id,
            MatchExceptionModel.id.not_in(resolved),
        )

    def list_open_exceptions(self, tenant_id: str, company_id: str) -> list[MatchExceptionModel]:
        return list(
            self._session.execute(
                self._open_exceptions_query(tenant_id, company_id).order_by(MatchExceptionModel.detected_at)
            ).scalars()
        )

    def _close_exception(
        self,
        action: ResolutionAction,
        *,
        tenant_id: str,
        company_id: str,
        purchase_order_id: UUID,
        actor_id: UUID,
        note: str | None,
    ) -> MatchResolutionModel:
        exception = self._session.execute(
            self._open_exceptions_query(tenant_id, company_id)
            .where(MatchExceptionModel.purchase_order_id == purchase_order_id)
            .order_by(MatchExceptionModel.detected_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        if exception is None:
            raise MatchExceptionNotFoundError(str(purchase_order_id))

        audit = self._kernel.auditor.record(
            tenant_id=tenant_id,
            company_id=company_id,
            entity_type="PurchaseOrder",
            entity_id=purchase_order_id,
            action=_RESOLUTION_AUDIT[action],
            actor_id=actor_id,
            payload={"exceptionId": exception.id, "action": action.value, "note": note},
        )
        resolution = MatchResolutionModel(
            tenant_id=tenant_id,
            company_id=company_id,
            exception_id=exception.id,
            purchase_order_id=purchase_order_id,
            action=action.value,
            note=note,
            resolved_at=self._kernel.clock.now(),
            audit_event_id=audit.id,
            created_by_id=actor_id,
        )
        self._session.add(resolution)

        order = load_scoped(
            self._session, PurchaseOrderModel, purchase_order_id, tenant_id, company_id,
            document_type="PurchaseOrder", for_update=True,
        )
        order.match_status = _RESOLUTION_STATUS[action].value
        order.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "three_way_match_exception_closed",
            extra={
                "purchase_order_id": str(purchase_order_id),
                "exception_id": str(exception.id),
                "action": action.value,
            },
        )
        return resolution

    def resolve_exception(
        self, *, tenant_id: str, company_id: str, purchase_order_id: UUID, actor_id: UUID, note: str | None = None
    ) -> MatchResolutionModel:
        """
        Resolve the open exception of an order.

        Raises:
            MatchExceptionNotFoundError: The order has no open exception.
        """
        return self._close_exception(
            ResolutionAction.RESOLVED,
            tenant_id=tenant_id, company_id=company_id,
            purchase_order_id=purchase_order_id, actor_id=actor_id, note=note,
        )

    def approve_exception(
        self, *, tenant_id: str, company_id: str, purchase_order_id: UUID, actor_id: UUID, note: str | None = None
    ) -> MatchResolutionModel:
        return self._close_exception(
            ResolutionAction.APPROVED,
            tenant_id=tenant_id, company_id=company_id,
            purchase_order_id=purchase_order_id, actor_id=actor_id, note=note,
        )

    def reject_exception(
        self, *, tenant_id: str, company_id: str, purchase_order_id: UUID, actor_id: UUID, note: str | None = None
    ) -> MatchResolutionModel:
        return self._close_exception(
            ResolutionAction.REJECTED,
            tenant_id=tenant_id, company_id=company_id,
            purchase_order_id=purchase_order_id, actor_id=actor_id, note=note,
        )
