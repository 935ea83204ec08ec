"""
LandedCostService -- capitalizes import costs into product cost.

Applies ``ledger_engines.landed_cost.allocate_landed_cost`` to a draft
import bill: each inventory line's product ``cost_price`` rises by its
per-unit increment, the increment is kept on the bill line, and the bill
is flagged ``landed_cost_allocated`` so posting debits INVENTORY instead of
EXPENSE for the landed total.

A bill without inventory lines is left untouched; its landed costs stay
expensed.
"""

from __future__ import annotations

from uuid import UUID

from ledger_engines.landed_cost import (
    CostLine,
    LandedCostAllocation,
    LandedCostCharges,
    allocate_landed_cost,
)
from ledger_engines.tax import LineAmounts, summarize
from ledger_kernel.db.types import round_money
from ledger_kernel.exceptions import AlreadyPostedError, InvalidDocumentError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_modules._posting_helpers import PostingKernel, load_scoped
from ledger_modules.ap.models import BillStatus, PurchaseType
from ledger_modules.ap.orm import BillModel
from ledger_modules.inventory.service import InventoryLedger

logger = get_logger("modules.ap.landed_cost")


class LandedCostService:
    def __init__(self, kernel: PostingKernel):
        self._kernel = kernel
        self._session = kernel.session
        self._inventory = InventoryLedger(kernel.session, kernel.clock)

    def allocate(
        self,
        *,
        tenant_id: str,
        company_id: str,
        bill_id: UUID,
        actor_id: UUID,
        charges: LandedCostCharges | None = None,
    ) -> LandedCostAllocation:
        """
        Allocate landed costs across the bill's inventory lines.

        ``charges`` replaces the bill's stored freight/customs/other and
        recomputes its total; when omitted the stored charges are used.

        Raises:
            AlreadyPostedError: Bill is no longer draft.
            InvalidDocumentError: Not an import bill, or already allocated.
        """
        bill = load_scoped(
            self._session, BillModel, bill_id, tenant_id, company_id,
            document_type="Bill", for_update=True,
        )
        if bill.status != BillStatus.DRAFT.value:
            raise AlreadyPostedError("Bill", str(bill.id), bill.status)
        if bill.purchase_type != PurchaseType.IMPORT.value:
            raise InvalidDocumentError("Bill", "landed costs apply to import bills only")
        if bill.landed_cost_allocated:
            raise InvalidDocumentError("Bill", "landed costs already allocated")

        if charges is not None:
            self._replace_charges(bill, charges)
        else:
            charges = LandedCostCharges(
                freight=bill.freight_cost,
                customs=bill.customs_duty,
                other=bill.other_import_costs,
            )

        allocation = allocate_landed_cost(
            lines=[
                CostLine(
                    line_id=line.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    line_total=line.line_total,
                )
                for line in bill.lines
                if line.is_inventory
            ],
            charges=charges,
        )
        if allocation.is_empty:
            logger.info(
                "landed_cost_not_allocated",
                extra={"bill_id": str(bill.id), "landed_total": allocation.landed_total},
            )
            return allocation

        lines_by_id = {line.id: line for line in bill.lines}
        for item in allocation.allocations:
            product = self._inventory.get_product(tenant_id, company_id, item.product_id, for_update=True)
            product.cost_price = product.cost_price + item.per_unit_increment
            product.updated_by_id = actor_id
            lines_by_id[item.line_id].landed_cost_per_unit = item.per_unit_increment

        bill.landed_cost_allocated = True
        bill.updated_by_id = actor_id
        self._session.flush()

        self._kernel.auditor.record(
            tenant_id=tenant_id,
            company_id=company_id,
            entity_type="Bill",
            entity_id=bill.id,
            action=AuditAction.LANDED_COST_ALLOCATED,
            actor_id=actor_id,
            payload={
                "landedTotal": allocation.landed_total,
                "allocations": [
                    {
                        "productId": item.product_id,
                        "share": item.share,
                        "perUnitIncrement": item.per_unit_increment,
                    }
                    for item in allocation.allocations
                ],
            },
        )
        logger.info(
            "landed_cost_allocated",
            extra={
                "bill_id": str(bill.id),
                "landed_total": allocation.landed_total,
                "line_count": len(allocation.allocations),
            },
        )
        return allocation

    @staticmethod
    def _replace_charges(bill: BillModel, charges: LandedCostCharges) -> None:
        bill.freight_cost = round_money(charges.freight)
        bill.customs_duty = round_money(charges.customs)
        bill.other_import_costs = round_money(charges.other)
        totals = summarize(
            [
                LineAmounts(net=line.net_amount, tax=line.tax_amount, gross=line.line_total, rate_pct=line.tax_rate_pct)
                for line in bill.lines
            ],
            extra_charges=charges.total,
        )
        bill.total_amount = totals.total
        bill.balance_due = totals.total
