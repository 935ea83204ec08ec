"""
Module: ledger_modules.cash.orm
Responsibility: Persistence for payments and payment applications.

Invariants enforced:
    - applied_amount <= amount for every payment.
    - PaymentApplication rows are append-only (db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import ScopedBase, UUIDString
from ledger_modules.cash.models import PaymentDirection, PaymentMethod


class PaymentModel(ScopedBase):
    """
    Payment received from a customer or made to a vendor.

    ``document_id`` links the payment to one source document;
    ``fx_gain_loss`` is the realized exchange difference booked with it.
    """

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payment_company_date", "company_id", "payment_date"),
        Index("idx_payment_document", "document_type", "document_id"),
    )

    direction: Mapped[str] = mapped_column(String(20), default=PaymentDirection.RECEIVABLE.value)
    payment_date: Mapped[date] = mapped_column(Date)
    amount: Mapped[Decimal] = mapped_column()
    applied_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    method: Mapped[str] = mapped_column(String(30), default=PaymentMethod.BANK_TRANSFER.value)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    counterparty_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    document_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    document_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    bank_transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    fx_gain_loss: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    applications: Mapped[list["PaymentApplicationModel"]] = relationship(
        back_populates="payment",
        order_by="PaymentApplicationModel.applied_at",
    )

    @property
    def unapplied_amount(self) -> Decimal:
        return self.amount - self.applied_amount

    def __repr__(self) -> str:
        return f"<PaymentModel {self.direction} {self.amount} applied={self.applied_amount}>"


class PaymentApplicationModel(ScopedBase):
    """Immutable record of part of a payment settling one document."""

    __tablename__ = "payment_applications"

    __table_args__ = (
        Index("idx_application_document", "document_type", "document_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("payments.id"), index=True)
    document_type: Mapped[str] = mapped_column(String(50))
    document_id: Mapped[UUID] = mapped_column(UUIDString())
    amount_requested: Mapped[Decimal] = mapped_column()
    amount_applied: Mapped[Decimal] = mapped_column()
    balance_before: Mapped[Decimal] = mapped_column()
    balance_after: Mapped[Decimal] = mapped_column()
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    payment: Mapped[PaymentModel] = relationship(back_populates="applications")
