"""
Module: ledger_modules.procurement.orm
Responsibility: Persistence for purchase orders, receipts, fixed assets and
    three-way match exceptions.

Invariants enforced:
    - Status changes go through ProcurementService and ALLOWED_TRANSITIONS.
    - quantity_stocked <= accepted quantity (or ordered quantity when no
      receipts exist) for every order line.
    - MatchException rows are append-only (db/immutability.py); their
      resolution is a separate MatchResolution row plus an audit event.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import ScopedBase, UUIDString
from ledger_modules.ap.models import PurchaseType
from ledger_modules.procurement.models import (
    MatchStatus,
    OrderType,
    PurchaseOrderStatus,
    ReceivingStatus,
)


# =============================================================================
# Purchase orders
# =============================================================================


class PurchaseOrderModel(ScopedBase):
    """Purchase order header."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("company_id", "po_number", name="uq_purchase_order_number"),
        Index("idx_purchase_order_status", "company_id", "status"),
    )

    vendor_id: Mapped[str] = mapped_column(String(64))
    po_number: Mapped[str] = mapped_column(String(100))
    order_date: Mapped[date] = mapped_column(Date)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    purchase_type: Mapped[str] = mapped_column(String(20), default=PurchaseType.LOCAL.value)
    order_type: Mapped[str] = mapped_column(String(20), default=OrderType.STOCK.value)

    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), default=PurchaseOrderStatus.DRAFT.value)
    receiving_status: Mapped[str] = mapped_column(String(20), default=ReceivingStatus.PENDING.value)
    match_status: Mapped[str] = mapped_column(String(20), default=MatchStatus.UNMATCHED.value)
    matched_bill_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("bills.id"), nullable=True
    )
    status_changed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        back_populates="purchase_order",
        order_by="PurchaseOrderLineModel.line_no",
        cascade="all, delete-orphan",
    )
    receipts: Mapped[list["ReceiptModel"]] = relationship(
        back_populates="purchase_order",
        order_by="ReceiptModel.received_date",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.po_number} {self.status}>"


class PurchaseOrderLineModel(ScopedBase):
    __tablename__ = "purchase_order_lines"

    purchase_order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), index=True
    )
    line_no: Mapped[int] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(String(500))
    product_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=True
    )
    quantity: Mapped[Decimal] = mapped_column()
    unit_price: Mapped[Decimal] = mapped_column()
    line_total: Mapped[Decimal] = mapped_column()
    quantity_stocked: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    purchase_order: Mapped[PurchaseOrderModel] = relationship(back_populates="lines")

    @property
    def item_key(self) -> str:
        return str(self.product_id) if self.product_id else self.description


# =============================================================================
# Receipts
# =============================================================================


class ReceiptModel(ScopedBase):
    """Goods receipt against one purchase order."""

    __tablename__ = "receipts"

    purchase_order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), index=True
    )
    receipt_number: Mapped[str] = mapped_column(String(100))
    received_date: Mapped[date] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    purchase_order: Mapped[PurchaseOrderModel] = relationship(back_populates="receipts")
    items: Mapped[list["ReceiptItemModel"]] = relationship(
        back_populates="receipt",
        cascade="all, delete-orphan",
    )


class ReceiptItemModel(ScopedBase):
    __tablename__ = "receipt_items"

    receipt_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("receipts.id"), index=True)
    purchase_order_line_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_order_lines.id"), index=True
    )
    quantity_received: Mapped[Decimal] = mapped_column()
    quantity_accepted: Mapped[Decimal] = mapped_column()
    quantity_rejected: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    receipt: Mapped[ReceiptModel] = relationship(back_populates="items")


# =============================================================================
# Fixed assets
# =============================================================================


class FixedAssetModel(ScopedBase):
    """Fixed asset created or incremented by fixed-asset order deliveries."""

    __tablename__ = "fixed_assets"

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_fixed_asset_company_name"),
    )

    name: Mapped[str] = mapped_column(String(255))
    quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    purchase_order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    acquired_date: Mapped[date | None] = mapped_column(Date, nullable=True)


# =============================================================================
# Three-way matching
# =============================================================================


class MatchExceptionModel(ScopedBase):
    """
    Immutable record of a PO/bill pair outside tolerance.

    ``discrepancies`` holds typed quantity discrepancy records, each with
    its own ``schema_version``.
    """

    __tablename__ = "match_exceptions"

    __table_args__ = (
        Index("idx_match_exception_po", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("purchase_orders.id"))
    bill_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("bills.id"))
    purchase_type: Mapped[str] = mapped_column(String(20))
    po_total: Mapped[Decimal] = mapped_column()
    bill_total: Mapped[Decimal] = mapped_column()
    receipt_total: Mapped[Decimal] = mapped_column()
    diff: Mapped[Decimal] = mapped_column()
    pct_diff: Mapped[Decimal] = mapped_column()
    tolerance_pct: Mapped[Decimal] = mapped_column()
    tolerance_abs: Mapped[Decimal] = mapped_column()
    discrepancies: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    schema_version: Mapped[int] = mapped_column(Integer, default=1)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    audit_event_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)


class MatchResolutionModel(ScopedBase):
    """Explicit resolution, approval or rejection of a match exception."""

    __tablename__ = "match_resolutions"

    __table_args__ = (
        UniqueConstraint("exception_id", name="uq_match_resolution_exception"),
    )

    exception_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("match_exceptions.id"))
    purchase_order_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("purchase_orders.id"))
    action: Mapped[str] = mapped_column(String(20))
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    resolved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    audit_event_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
