"""
Module: ledger_modules.tax.orm
Responsibility: Stored tax rates per company.  ``rate_pct`` is a percentage
    (``7.5`` means 7.5%).
"""

from decimal import Decimal

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import ScopedBase


class TaxRateModel(ScopedBase):
    __tablename__ = "tax_rates"

    __table_args__ = (
        UniqueConstraint("company_id", "tax_name", name="uq_tax_rate_company_name"),
    )

    tax_name: Mapped[str] = mapped_column(String(100))
    rate_pct: Mapped[Decimal] = mapped_column()
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<TaxRateModel {self.tax_name} {self.rate_pct}%>"
