"""
Procurement Service (``ledger_modules.procurement.service``).

Responsibility
--------------
Purchase order lifecycle: creation, status transitions, goods receipts and
delivery.  Delivery is the document conversion for purchase orders: it
stocks accepted quantities through the inventory ledger (or creates fixed
asset records for fixed-asset orders).  It posts no journal entry; the
vendor bill carries the AP posting.

Transitions
-----------
    draft     -> approved | cancelled
    approved  -> sent | delivered | cancelled
    sent      -> delivered | cancelled
    delivered -> closed
    closed, cancelled: terminal

Invariants
----------
- A line is never stocked twice: ``quantity_stocked`` tracks what delivery
  already moved, so a later delivery only stocks the remainder.
- Receipts never accept more than they received.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_engines.stock import MovementType
from ledger_kernel.db.types import round_money
from ledger_kernel.exceptions import InvalidDocumentError, InvalidStatusTransitionError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_modules._posting_helpers import PostingKernel, load_scoped
from ledger_modules.ap.models import PurchaseType
from ledger_modules.inventory.models import ProductType
from ledger_modules.inventory.service import InventoryLedger
from ledger_modules.procurement.models import (
    ALLOWED_TRANSITIONS,
    RECEIVABLE_STATUSES,
    DeliveryResult,
    OrderType,
    PurchaseOrderLineInput,
    PurchaseOrderStatus,
    ReceiptItemInput,
    ReceivingStatus,
)
from ledger_modules.procurement.orm import (
    FixedAssetModel,
    PurchaseOrderLineModel,
    PurchaseOrderModel,
    ReceiptItemModel,
    ReceiptModel,
)

logger = get_logger("modules.procurement.service")

DOCUMENT_TYPE = "PurchaseOrder"

_ZERO = Decimal("0")


def accepted_by_line(order: PurchaseOrderModel) -> dict[UUID, Decimal]:
    """Accepted quantity per order line across all receipts."""
    totals: dict[UUID, Decimal] = {}
    for receipt in order.receipts:
        for item in receipt.items:
            totals[item.purchase_order_line_id] = (
                totals.get(item.purchase_order_line_id, _ZERO) + item.quantity_accepted
            )
    return totals


class ProcurementService:
    """
    Purchase orders and receipts.

    Contract
    --------
    All writes flush into the caller's unit of work.  ``transition`` to
    DELIVERED runs the delivery conversion.
    """

    def __init__(self, kernel: PostingKernel):
        self._kernel = kernel
        self._session = kernel.session
        self._inventory = InventoryLedger(kernel.session, kernel.clock)

    def create_purchase_order(
        self,
        *,
        tenant_id: str,
        company_id: str,
        vendor_id: str,
        po_number: str,
        order_date: date,
        lines: Sequence[PurchaseOrderLineInput],
        actor_id: UUID,
        currency: str = "USD",
        purchase_type: PurchaseType = PurchaseType.LOCAL,
        order_type: OrderType = OrderType.STOCK,
    ) -> PurchaseOrderModel:
        if not lines:
            raise InvalidDocumentError(DOCUMENT_TYPE, "a purchase order needs at least one line")

        order = PurchaseOrderModel(
            tenant_id=tenant_id,
            company_id=company_id,
            vendor_id=vendor_id,
            po_number=po_number,
            order_date=order_date,
            currency=currency,
            purchase_type=PurchaseType(purchase_type).value,
            order_type=OrderType(order_type).value,
            status=PurchaseOrderStatus.DRAFT.value,
            receiving_status=ReceivingStatus.PENDING.value,
            created_by_id=actor_id,
        )
        total = _ZERO
        for line_no, line in enumerate(lines, start=1):
            if line.product_id is not None:
                self._inventory.get_product(tenant_id, company_id, line.product_id)
            line_total = round_money(line.quantity * line.unit_price)
            total += line_total
            order.lines.append(
                PurchaseOrderLineModel(
                    tenant_id=tenant_id,
                    company_id=company_id,
                    line_no=line_no,
                    description=line.description,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_total=line_total,
                    quantity_stocked=_ZERO,
                    created_by_id=actor_id,
                )
            )
        order.total_amount = round_money(total)
        self._session.add(order)
        self._session.flush()
        logger.info(
            "purchase_order_created",
            extra={"purchase_order_id": str(order.id), "po_number": po_number, "total_amount": order.total_amount},
        )
        return order

    def get_purchase_order(
        self, tenant_id: str, company_id: str, purchase_order_id: UUID, *, for_update: bool = False
    ) -> PurchaseOrderModel:
        return load_scoped(
            self._session, PurchaseOrderModel, purchase_order_id, tenant_id, company_id,
            document_type=DOCUMENT_TYPE, for_update=for_update,
        )

    # =========================================================================
    # Status transitions
    # =========================================================================

    def transition(
        self,
        *,
        tenant_id: str,
        company_id: str,
        purchase_order_id: UUID,
        to_status: PurchaseOrderStatus,
        actor_id: UUID,
    ) -> PurchaseOrderModel:
        """
        Move an order to ``to_status``.

        Raises:
            InvalidStatusTransitionError: Not allowed from the current status.
        """
        to_status = PurchaseOrderStatus(to_status)
        if to_status == PurchaseOrderStatus.DELIVERED:
            self.deliver(tenant_id=tenant_id, company_id=company_id, purchase_order_id=purchase_order_id, actor_id=actor_id)
            return self.get_purchase_order(tenant_id, company_id, purchase_order_id)

        order = self.get_purchase_order(tenant_id, company_id, purchase_order_id, for_update=True)
        self._set_status(order, to_status, actor_id)
        return order

    def _set_status(self, order: PurchaseOrderModel, to_status: PurchaseOrderStatus, actor_id: UUID) -> None:
        current = PurchaseOrderStatus(order.status)
        if to_status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(DOCUMENT_TYPE, str(order.id), current.value, to_status.value)
        order.status = to_status.value
        order.status_changed_at = self._kernel.clock.now()
        order.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "purchase_order_status_changed",
            extra={
                "purchase_order_id": str(order.id),
                "from_status": current.value,
                "to_status": to_status.value,
            },
        )

    # =========================================================================
    # Receipts
    # =========================================================================

    def record_receipt(
        self,
        *,
        tenant_id: str,
        company_id: str,
        purchase_order_id: UUID,
        receipt_number: str,
        received_date: date,
        items: Sequence[ReceiptItemInput],
        actor_id: UUID,
        notes: str | None = None,
    ) -> ReceiptModel:
        """
        Record received/accepted/rejected quantities and refresh the order's
        receiving status.

        Raises:
            InvalidDocumentError: Order cannot receive goods, unknown line,
                or accepted quantity outside ``0..received``.
        """
        order = self.get_purchase_order(tenant_id, company_id, purchase_order_id, for_update=True)
        if PurchaseOrderStatus(order.status) not in RECEIVABLE_STATUSES:
            raise InvalidDocumentError(DOCUMENT_TYPE, f"cannot receive goods on a {order.status} order")

        lines = {line.id: line for line in order.lines}
        receipt = ReceiptModel(
            tenant_id=tenant_id,
            company_id=company_id,
            purchase_order_id=order.id,
            receipt_number=receipt_number,
            received_date=received_date,
            notes=notes,
            created_by_id=actor_id,
        )
        for item in items:
            if item.line_id not in lines:
                raise InvalidDocumentError("Receipt", f"line {item.line_id} is not on order {order.po_number}")
            if item.quantity_received < _ZERO or not (_ZERO <= item.accepted <= item.quantity_received):
                raise InvalidDocumentError(
                    "Receipt",
                    f"accepted {item.accepted} must be between 0 and received {item.quantity_received}",
                )
            receipt.items.append(
                ReceiptItemModel(
                    tenant_id=tenant_id,
                    company_id=company_id,
                    purchase_order_line_id=item.line_id,
                    quantity_received=item.quantity_received,
                    quantity_accepted=item.accepted,
                    quantity_rejected=item.rejected,
                    created_by_id=actor_id,
                )
            )
        order.receipts.append(receipt)
        self._session.flush()

        order.receiving_status = self._receiving_status(order).value
        order.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "receipt_recorded",
            extra={
                "purchase_order_id": str(order.id),
                "receipt_number": receipt_number,
                "receiving_status": order.receiving_status,
            },
        )
        return receipt

    @staticmethod
    def _receiving_status(order: PurchaseOrderModel) -> ReceivingStatus:
        accepted = accepted_by_line(order)
        if all(accepted.get(line.id, _ZERO) >= line.quantity for line in order.lines):
            return ReceivingStatus.COMPLETE
        if any(quantity > _ZERO for quantity in accepted.values()):
            return ReceivingStatus.PARTIAL
        return ReceivingStatus.PENDING

    # =========================================================================
    # Delivery
    # =========================================================================

    def deliver(
        self,
        *,
        tenant_id: str,
        company_id: str,
        purchase_order_id: UUID,
        actor_id: UUID,
    ) -> DeliveryResult:
        """
        Transition to DELIVERED and stock what was accepted.

        With receipts, each line stocks its accepted quantity not yet
        stocked; without receipts, the full ordered quantity.  Stock orders
        record PURCHASE movements and write the unit price as the product's
        latest cost; fixed-asset orders create or increment fixed assets
        matched by line description.
        """
        order = self.get_purchase_order(tenant_id, company_id, purchase_order_id, for_update=True)
        self._set_status(order, PurchaseOrderStatus.DELIVERED, actor_id)

        has_receipts = bool(order.receipts)
        accepted = accepted_by_line(order)
        fixed_asset_ids: list[UUID] = []
        movement_count = 0

        for line in order.lines:
            deliverable = accepted.get(line.id, _ZERO) if has_receipts else line.quantity
            to_stock = deliverable - line.quantity_stocked
            if to_stock <= _ZERO:
                continue

            if order.order_type == OrderType.FIXED_ASSET.value:
                asset = self._increment_fixed_asset(order, line, to_stock, actor_id)
                fixed_asset_ids.append(asset.id)
            elif line.product_id is not None:
                product = self._inventory.get_product(tenant_id, company_id, line.product_id, for_update=True)
                if product.product_type != ProductType.INVENTORY.value:
                    continue
                self._inventory.record_movement(
                    tenant_id=tenant_id,
                    company_id=company_id,
                    product_id=product.id,
                    movement_type=MovementType.PURCHASE,
                    quantity=to_stock,
                    actor_id=actor_id,
                    unit_cost=line.unit_price,
                    reference=order.po_number,
                    reference_type=DOCUMENT_TYPE,
                    reference_id=order.id,
                )
                product.cost_price = line.unit_price
                product.updated_by_id = actor_id
                movement_count += 1
            else:
                continue

            line.quantity_stocked = line.quantity_stocked + to_stock
            line.updated_by_id = actor_id

        order.delivered_at = self._kernel.clock.now()
        self._session.flush()

        self._kernel.auditor.record(
            tenant_id=tenant_id,
            company_id=company_id,
            entity_type=DOCUMENT_TYPE,
            entity_id=order.id,
            action=AuditAction.PURCHASE_ORDER_DELIVERED,
            actor_id=actor_id,
            payload={
                "poNumber": order.po_number,
                "movementCount": movement_count,
                "fixedAssetIds": fixed_asset_ids,
            },
        )
        logger.info(
            "purchase_order_delivered",
            extra={
                "purchase_order_id": str(order.id),
                "movement_count": movement_count,
                "fixed_asset_count": len(fixed_asset_ids),
            },
        )
        return DeliveryResult(
            purchase_order_id=order.id,
            status=PurchaseOrderStatus.DELIVERED,
            movement_count=movement_count,
            fixed_asset_ids=tuple(fixed_asset_ids),
        )

    def _increment_fixed_asset(
        self,
        order: PurchaseOrderModel,
        line: PurchaseOrderLineModel,
        quantity: Decimal,
        actor_id: UUID,
    ) -> FixedAssetModel:
        asset = self._session.execute(
            select(FixedAssetModel).where(
                FixedAssetModel.tenant_id == order.tenant_id,
                FixedAssetModel.company_id == order.company_id,
                FixedAssetModel.name == line.description,
            )
        ).scalar_one_or_none()
        cost = round_money(quantity * line.unit_price)
        if asset is None:
            asset = FixedAssetModel(
                tenant_id=order.tenant_id,
                company_id=order.company_id,
                name=line.description,
                quantity=quantity,
                total_cost=cost,
                purchase_order_id=order.id,
                acquired_date=order.order_date,
                created_by_id=actor_id,
            )
            self._session.add(asset)
        else:
            asset.quantity = asset.quantity + quantity
            asset.total_cost = asset.total_cost + cost
            asset.updated_by_id = actor_id
        self._session.flush()
        return asset
