"""
Module: ledger_kernel.models.accounting_period
Responsibility: Per-company accounting period status keyed by ``YYYY-MM``.
Architecture position: Kernel > Models.

Invariants enforced:
    - One row per (company, period_key).  A missing row means OPEN.
    - CLOSED is final (PeriodGuard.set_status).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import ScopedBase, UUIDString


class PeriodStatus(str, Enum):
    OPEN = "open"
    LOCKED = "locked"
    CLOSED = "closed"


BLOCKING_STATUSES = frozenset({PeriodStatus.LOCKED, PeriodStatus.CLOSED})


class AccountingPeriod(ScopedBase):
    """Status record for one company month."""

    __tablename__ = "accounting_periods"

    __table_args__ = (
        UniqueConstraint("company_id", "period_key", name="uq_period_company_key"),
    )

    period_key: Mapped[str] = mapped_column(String(7), nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(10),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    status_changed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    status_changed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<AccountingPeriod {self.company_id}:{self.period_key} {self.status}>"
