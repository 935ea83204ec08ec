"""
Module: ledger_modules.ar.orm
Responsibility: Persistence for customer invoices and their lines.

Invariants enforced:
    - 0 <= balance_due <= total_amount.
    - total_amount = subtotal + tax_total.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import ScopedBase, UUIDString
from ledger_modules.ar.models import InvoiceStatus, InvoiceSummary


class InvoiceModel(ScopedBase):
    """Customer invoice."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("company_id", "invoice_number", name="uq_invoice_company_number"),
        Index("idx_invoice_customer_status", "company_id", "customer_id", "status"),
        Index("idx_invoice_status_date", "company_id", "status", "invoice_date"),
    )

    customer_id: Mapped[str] = mapped_column(String(64))
    invoice_number: Mapped[str] = mapped_column(String(100))
    invoice_date: Mapped[date] = mapped_column(Date)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    balance_due: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    status: Mapped[str] = mapped_column(String(20), default=InvoiceStatus.DRAFT.value)
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )
    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["InvoiceLineModel"]] = relationship(
        back_populates="invoice",
        order_by="InvoiceLineModel.line_no",
        cascade="all, delete-orphan",
    )

    def to_summary(self) -> InvoiceSummary:
        return InvoiceSummary(
            invoice_id=self.id,
            invoice_number=self.invoice_number,
            status=InvoiceStatus(self.status),
            subtotal=self.subtotal,
            tax_total=self.tax_total,
            total_amount=self.total_amount,
            balance_due=self.balance_due,
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number} {self.status} due={self.balance_due}>"


class InvoiceLineModel(ScopedBase):
    __tablename__ = "invoice_lines"

    invoice_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("invoices.id"), index=True)
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

    invoice: Mapped[InvoiceModel] = relationship(back_populates="lines")
