"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines, the
    single source of financial truth for every document posting.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Sum of debits equals sum of credits for every POSTED entry, compared
      at currency minor-unit precision (JournalService.post).
    - DRAFT -> POSTED is the only status change; a posted entry and its
      lines are never updated or deleted (db/immutability.py).

Failure modes:
    - ImmutabilityViolationError on any update/delete of a posted entry or
      of a line belonging to one.

Audit relevance:
    source_document_type/source_document_id tie every entry back to the bill,
    invoice, payment or purchase order that produced it.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import ScopedBase, TrackedBase, UUIDString
from ledger_kernel.db.types import round_money


class JournalEntryStatus(str, Enum):
    DRAFT = "draft"
    POSTED = "posted"


class JournalEntry(ScopedBase):
    """
    Journal entry header.

    Contract:
        Created in DRAFT with no lines; lines are appended while DRAFT;
        JournalService.post flips it to POSTED exactly once.

    Non-goals:
        - No reversal or un-post workflow exists.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        Index("idx_journal_company_date", "company_id", "entry_date"),
        Index("idx_journal_source", "source_document_type", "source_document_id"),
        Index("idx_journal_status", "status"),
    )

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    memo: Mapped[str | None] = mapped_column(Text, nullable=True)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[JournalEntryStatus] = mapped_column(
        String(10),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    source_document_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    source_document_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_seq",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.id} status={self.status}>"

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def total_debits(self) -> Decimal:
        return sum((round_money(line.debit) for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((round_money(line.credit) for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        """Debits equal credits to the cent."""
        return self.total_debits == self.total_credits


class JournalLine(TrackedBase):
    """
    One debit and/or credit against an account.

    Contract:
        Owned exclusively by one JournalEntry.  The engine does not require
        exactly one non-zero side; only the entry-level sum is enforced.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"), nullable=False)

    credit: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"), nullable=False)

    memo: Mapped[str | None] = mapped_column(String(255), nullable=True)

    line_seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<JournalLine {self.account_id} Dr {self.debit} Cr {self.credit}>"
