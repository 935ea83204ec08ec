"""
Module: ledger_kernel.models.company_setting
Responsibility: Company-level key/value configuration (e.g. three-way
    match tolerances).  Values are stored as strings and parsed by the
    consumer that owns the key.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import ScopedBase


class CompanySetting(ScopedBase):

    __tablename__ = "company_settings"

    __table_args__ = (
        UniqueConstraint("company_id", "key", name="uq_company_setting_key"),
    )

    key: Mapped[str] = mapped_column(String(100), nullable=False)

    value: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<CompanySetting {self.company_id}:{self.key}={self.value}>"
