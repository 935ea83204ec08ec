"""
Domain DTOs for the journal engine and period guard.

Frozen dataclasses passed between kernel services and the document
modules.  They carry no ORM state.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


def period_key_for(value: date) -> str:
    """Accounting period key (``YYYY-MM``) for a document date."""
    return f"{value.year:04d}-{value.month:02d}"


@dataclass(frozen=True)
class LineSpec:
    """One journal line to be added to a draft entry."""

    account_id: UUID
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    memo: str | None = None

    def __post_init__(self) -> None:
        if self.debit < 0 or self.credit < 0:
            raise ValueError("Journal line amounts cannot be negative")


@dataclass(frozen=True)
class PeriodOverride:
    """
    Caller's request to post into a locked or closed period.

    ``override_closed_period`` must be True and the justification must
    meet the configured minimum length for the override to be honored.
    """

    override_closed_period: bool
    justification: str = ""


@dataclass(frozen=True)
class PeriodClearance:
    """Proof that the period guard was consulted for one posting."""

    company_id: str
    period_key: str
    status: str
    overridden: bool = False
    audit_event_id: UUID | None = None


@dataclass(frozen=True)
class PostedEntry:
    """Read-only view of a journal entry after posting."""

    entry_id: UUID
    company_id: str
    entry_date: date
    reference: str | None
    status: str
    total_debits: Decimal
    total_credits: Decimal
    line_count: int
    posted_at: datetime | None = None
    period_clearance: PeriodClearance | None = field(default=None, compare=False)
