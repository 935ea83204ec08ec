"""
Procurement domain models (``ledger_modules.procurement.models``).

Purchase order lifecycle enums, the transition table, and the frozen
inputs and results passed to and from the procurement services.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_engines.matching import MatchTolerance, QuantityDiscrepancy, TotalsComparison


class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    SENT = "sent"
    DELIVERED = "delivered"
    CLOSED = "closed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: dict[PurchaseOrderStatus, frozenset[PurchaseOrderStatus]] = {
    PurchaseOrderStatus.DRAFT: frozenset({PurchaseOrderStatus.APPROVED, PurchaseOrderStatus.CANCELLED}),
    PurchaseOrderStatus.APPROVED: frozenset({
        PurchaseOrderStatus.SENT,
        PurchaseOrderStatus.DELIVERED,
        PurchaseOrderStatus.CANCELLED,
    }),
    PurchaseOrderStatus.SENT: frozenset({PurchaseOrderStatus.DELIVERED, PurchaseOrderStatus.CANCELLED}),
    PurchaseOrderStatus.DELIVERED: frozenset({PurchaseOrderStatus.CLOSED}),
    PurchaseOrderStatus.CLOSED: frozenset(),
    PurchaseOrderStatus.CANCELLED: frozenset(),
}

# Orders that can still receive goods.
RECEIVABLE_STATUSES = frozenset({PurchaseOrderStatus.APPROVED, PurchaseOrderStatus.SENT})


class ReceivingStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETE = "complete"


class MatchStatus(str, Enum):
    UNMATCHED = "unmatched"
    MATCHED = "matched"
    EXCEPTION = "exception"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class OrderType(str, Enum):
    """STOCK orders move inventory on delivery; FIXED_ASSET orders create asset records."""

    STOCK = "stock"
    FIXED_ASSET = "fixed_asset"


class ResolutionAction(str, Enum):
    RESOLVED = "resolved"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class PurchaseOrderLineInput:
    description: str
    quantity: Decimal
    unit_price: Decimal
    product_id: UUID | None = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Order quantity must be positive: {self.description}")
        if self.unit_price < 0:
            raise ValueError(f"Order unit price cannot be negative: {self.description}")


@dataclass(frozen=True)
class ReceiptItemInput:
    """Quantities received against one order line; accepted defaults to received."""

    line_id: UUID
    quantity_received: Decimal
    quantity_accepted: Decimal | None = None

    @property
    def accepted(self) -> Decimal:
        return self.quantity_received if self.quantity_accepted is None else self.quantity_accepted

    @property
    def rejected(self) -> Decimal:
        return self.quantity_received - self.accepted


@dataclass(frozen=True)
class DeliveryResult:
    purchase_order_id: UUID
    status: PurchaseOrderStatus
    movement_count: int
    fixed_asset_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of a three-way match.

    An out-of-tolerance pair is still a successful call: ``matched`` is
    False and ``exception_id`` points at the recorded MatchException.
    """

    purchase_order_id: UUID
    bill_id: UUID
    po_total: Decimal
    bill_total: Decimal
    receipt_total: Decimal
    comparison: TotalsComparison
    status: MatchStatus
    exception_id: UUID | None = None
    discrepancies: tuple[QuantityDiscrepancy, ...] = field(default_factory=tuple)

    @property
    def matched(self) -> bool:
        return self.status == MatchStatus.MATCHED

    @property
    def tolerance(self) -> MatchTolerance:
        return self.comparison.tolerance

    @property
    def diff(self) -> Decimal:
        return self.comparison.diff

    @property
    def pct_diff(self) -> Decimal:
        return self.comparison.pct_diff
