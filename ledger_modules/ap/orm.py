"""
Module: ledger_modules.ap.orm
Responsibility: Persistence for vendor bills and their lines.

Invariants enforced:
    - 0 <= balance_due <= total_amount (BillService, settle_balance).
    - total_amount = subtotal + tax_total + freight + customs + other.
    - Lines are fixed once the bill leaves draft.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import ScopedBase, UUIDString
from ledger_modules.ap.models import BillStatus, BillSummary, PurchaseType


class BillModel(ScopedBase):
    """Vendor bill."""

    __tablename__ = "bills"

    __table_args__ = (
        UniqueConstraint("company_id", "vendor_id", "bill_number", name="uq_bill_vendor_number"),
        Index("idx_bill_status_date", "company_id", "status", "bill_date"),
        Index("idx_bill_purchase_order", "purchase_order_id"),
    )

    vendor_id: Mapped[str] = mapped_column(String(64))
    bill_number: Mapped[str] = mapped_column(String(100))
    bill_date: Mapped[date] = mapped_column(Date)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    purchase_type: Mapped[str] = mapped_column(String(20), default=PurchaseType.LOCAL.value)
    purchase_order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    freight_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    customs_duty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    other_import_costs: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    landed_cost_allocated: Mapped[bool] = mapped_column(Boolean, default=False)
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    balance_due: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    status: Mapped[str] = mapped_column(String(20), default=BillStatus.DRAFT.value)
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )
    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["BillLineModel"]] = relationship(
        back_populates="bill",
        order_by="BillLineModel.line_no",
        cascade="all, delete-orphan",
    )

    @property
    def landed_cost_total(self) -> Decimal:
        return self.freight_cost + self.customs_duty + self.other_import_costs

    def to_summary(self) -> BillSummary:
        return BillSummary(
            bill_id=self.id,
            bill_number=self.bill_number,
            status=BillStatus(self.status),
            subtotal=self.subtotal,
            tax_total=self.tax_total,
            landed_cost_total=self.landed_cost_total,
            total_amount=self.total_amount,
            balance_due=self.balance_due,
        )

    def __repr__(self) -> str:
        return f"<BillModel {self.bill_number} {self.status} total={self.total_amount}>"


class BillLineModel(ScopedBase):
    """
    Bill line with its computed amounts.

    ``is_inventory`` is fixed at creation from the product type.
    ``landed_cost_per_unit`` is the increment written by landed cost
    allocation.
    """

    __tablename__ = "bill_lines"

    bill_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("bills.id"), index=True)
    line_no: Mapped[int] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(String(500))
    product_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=True
    )
    location_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    quantity: Mapped[Decimal] = mapped_column()
    unit_price: Mapped[Decimal] = mapped_column()
    tax_rate_pct: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    net_amount: Mapped[Decimal] = mapped_column()
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    line_total: Mapped[Decimal] = mapped_column()
    is_inventory: Mapped[bool] = mapped_column(Boolean, default=False)
    landed_cost_per_unit: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    bill: Mapped[BillModel] = relationship(back_populates="lines")
