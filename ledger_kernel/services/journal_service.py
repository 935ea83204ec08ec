"""
JournalService -- the journal engine.

Responsibility:
    Creates draft entries, appends lines, and posts.  Owns the debit ==
    credit invariant and the DRAFT -> POSTED transition.

Invariants enforced:
    - Lines are accepted only while the entry is DRAFT.
    - post() rejects an entry whose rounded debits differ from its rounded
      credits (UnbalancedEntryError) and consults the period guard before
      flipping the status.
    - Posting is irreversible; there is no un-post.

Non-goals:
    - Inventory, balance and payment side effects are the posting
      pipeline's job, not this service's.
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    LineSpec,
    PeriodClearance,
    PeriodOverride,
    PostedEntry,
    period_key_for,
)
from ledger_kernel.exceptions import EntryNotDraftError, UnbalancedEntryError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_guard import PeriodGuard

logger = get_logger("services.journal")


class JournalService(BaseService):
    """
    Journal engine.

    Contract:
        create_entry -> add_line* -> post.  All writes flush inside the
        caller's unit of work.

    Guarantees:
        - A POSTED entry always balances to the cent.
    """

    def __init__(self, session, period_guard: PeriodGuard, clock: Clock | None = None):
        super().__init__(session)
        self._period_guard = period_guard
        self._clock = clock or SystemClock()

    def create_entry(
        self,
        *,
        tenant_id: str,
        company_id: str,
        entry_date: date,
        actor_id: UUID,
        memo: str | None = None,
        reference: str | None = None,
        source_document_type: str | None = None,
        source_document_id: UUID | None = None,
    ) -> JournalEntry:
        """Create an empty DRAFT entry."""
        entry = JournalEntry(
            tenant_id=tenant_id,
            company_id=company_id,
            entry_date=entry_date,
            memo=memo,
            reference=reference,
            status=JournalEntryStatus.DRAFT,
            source_document_type=source_document_type,
            source_document_id=source_document_id,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        self.session.flush()
        logger.debug(
            "journal_entry_created",
            extra={"entry_id": str(entry.id), "company_id": company_id, "reference": reference},
        )
        return entry

    def add_line(
        self,
        entry: JournalEntry,
        account_id: UUID,
        debit: Decimal = Decimal("0"),
        credit: Decimal = Decimal("0"),
        memo: str | None = None,
    ) -> JournalLine:
        """
        Append a line to a draft entry.  Amounts are rounded to the cent.

        Raises:
            EntryNotDraftError: Entry is not DRAFT.
        """
        if not entry.is_draft:
            raise EntryNotDraftError(str(entry.id), str(entry.status))

        line = JournalLine(
            account_id=account_id,
            debit=round_money(debit),
            credit=round_money(credit),
            memo=memo,
            line_seq=len(entry.lines),
            created_by_id=entry.created_by_id,
        )
        entry.lines.append(line)
        self.session.flush()
        return line

    def add_lines(self, entry: JournalEntry, lines: Iterable[LineSpec]) -> list[JournalLine]:
        return [
            self.add_line(entry, spec.account_id, spec.debit, spec.credit, spec.memo)
            for spec in lines
        ]

    def post(
        self,
        entry: JournalEntry,
        actor_id: UUID,
        *,
        clearance: PeriodClearance | None = None,
        override: PeriodOverride | None = None,
        document_type: str = "JournalEntry",
    ) -> PostedEntry:
        """
        Validate and post a draft entry.

        ``clearance`` is the result of a PeriodGuard.check already made for
        this posting; when absent or for another period, the guard is
        consulted here.

        Raises:
            EntryNotDraftError: Entry already posted.
            UnbalancedEntryError: Debits != credits to the cent.
            PeriodLockedError / InvalidOverrideError: From the period guard.
        """
        if not entry.is_draft:
            raise EntryNotDraftError(str(entry.id), str(entry.status))

        debits = entry.total_debits
        credits = entry.total_credits
        if debits != credits:
            logger.error(
                "journal_entry_unbalanced",
                extra={"entry_id": str(entry.id), "debits": debits, "credits": credits},
            )
            raise UnbalancedEntryError(str(entry.id), debits, credits)

        period_key = period_key_for(entry.entry_date)
        if clearance is None or clearance.period_key != period_key or clearance.company_id != entry.company_id:
            clearance = self._period_guard.check(
                tenant_id=entry.tenant_id,
                company_id=entry.company_id,
                document_date=entry.entry_date,
                document_type=document_type,
                document_id=entry.source_document_id or entry.id,
                actor_id=actor_id,
                override=override,
            )

        entry.status = JournalEntryStatus.POSTED
        entry.posted_at = self._clock.now()
        entry.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "journal_entry_posted",
            extra={
                "entry_id": str(entry.id),
                "company_id": entry.company_id,
                "period_key": period_key,
                "line_count": len(entry.lines),
                "total": debits,
                "overridden": clearance.overridden,
            },
        )
        return PostedEntry(
            entry_id=entry.id,
            company_id=entry.company_id,
            entry_date=entry.entry_date,
            reference=entry.reference,
            status=JournalEntryStatus.POSTED.value,
            total_debits=debits,
            total_credits=credits,
            line_count=len(entry.lines),
            posted_at=entry.posted_at,
            period_clearance=clearance,
        )

    def post_lines(
        self,
        *,
        tenant_id: str,
        company_id: str,
        entry_date: date,
        lines: Iterable[LineSpec],
        actor_id: UUID,
        memo: str | None = None,
        reference: str | None = None,
        source_document_type: str | None = None,
        source_document_id: UUID | None = None,
        clearance: PeriodClearance | None = None,
    ) -> PostedEntry:
        """create_entry + add_lines + post in one call."""
        entry = self.create_entry(
            tenant_id=tenant_id,
            company_id=company_id,
            entry_date=entry_date,
            actor_id=actor_id,
            memo=memo,
            reference=reference,
            source_document_type=source_document_type,
            source_document_id=source_document_id,
        )
        self.add_lines(entry, lines)
        return self.post(
            entry,
            actor_id,
            clearance=clearance,
            document_type=source_document_type or "JournalEntry",
        )
