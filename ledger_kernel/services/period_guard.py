"""
PeriodGuard -- blocks posting into locked or closed accounting periods.

Responsibility:
    Resolves the status of a company's ``YYYY-MM`` period and decides
    whether a document dated into it may post.  Also owns period status
    changes.

Invariants enforced:
    - LOCKED/CLOSED periods reject postings with PeriodLockedError unless
      an override with a sufficient justification is supplied.
    - An honored override writes exactly one audit record (adjustment
      type, justification, actor, timestamp) BEFORE the posting proceeds.
    - Status changes: open -> locked -> closed, locked -> open.  CLOSED is
      final.

Failure modes:
    - Lookup failure (SQLAlchemyError) is treated as OPEN and logged
      (fail-open).
    - The status read is not locked through commit: a period closed
      concurrently with an in-flight posting may still let it land.
"""

from collections.abc import Callable
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import PeriodClearance, PeriodOverride, period_key_for
from ledger_kernel.exceptions import (
    InvalidOverrideError,
    InvalidPeriodTransitionError,
    PeriodLockedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.accounting_period import (
    BLOCKING_STATUSES,
    AccountingPeriod,
    PeriodStatus,
)
from ledger_kernel.services.auditor_service import AuditorService

logger = get_logger("services.period_guard")

DEFAULT_MIN_JUSTIFICATION_LENGTH = 10

_ALLOWED_TRANSITIONS: dict[PeriodStatus, frozenset[PeriodStatus]] = {
    PeriodStatus.OPEN: frozenset({PeriodStatus.LOCKED}),
    PeriodStatus.LOCKED: frozenset({PeriodStatus.OPEN, PeriodStatus.CLOSED}),
    PeriodStatus.CLOSED: frozenset(),
}

StatusLookup = Callable[[str, str, str], PeriodStatus | str | None]


class PeriodGuard:
    """
    Period status resolution and posting clearance.

    Contract:
        ``check()`` is called by the posting pipeline before any write for
        a document.  It returns a PeriodClearance that JournalService.post
        accepts as proof the guard already ran.

    Non-goals:
        - Does NOT hold a lock on the period until commit.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        min_justification_length: int = DEFAULT_MIN_JUSTIFICATION_LENGTH,
        status_lookup: StatusLookup | None = None,
    ):
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._min_justification_length = min_justification_length
        self._status_lookup = status_lookup or self._lookup_status

    def _get_period(self, tenant_id: str, company_id: str, period_key: str) -> AccountingPeriod | None:
        return self._session.execute(
            select(AccountingPeriod).where(
                AccountingPeriod.tenant_id == tenant_id,
                AccountingPeriod.company_id == company_id,
                AccountingPeriod.period_key == period_key,
            )
        ).scalar_one_or_none()

    def _lookup_status(self, tenant_id: str, company_id: str, period_key: str) -> PeriodStatus | None:
        # Savepoint keeps a failed lookup from poisoning the caller's transaction.
        with self._session.begin_nested():
            period = self._get_period(tenant_id, company_id, period_key)
        return PeriodStatus(period.status) if period is not None else None

    def status(self, tenant_id: str, company_id: str, period_key: str) -> PeriodStatus:
        """Status of the period; missing rows and lookup failures read as OPEN."""
        try:
            found = self._status_lookup(tenant_id, company_id, period_key)
        except SQLAlchemyError:
            logger.warning(
                "period_status_lookup_failed",
                extra={"company_id": company_id, "period_key": period_key},
                exc_info=True,
            )
            return PeriodStatus.OPEN
        return PeriodStatus(found) if found is not None else PeriodStatus.OPEN

    def check(
        self,
        *,
        tenant_id: str,
        company_id: str,
        document_date: date,
        document_type: str,
        document_id: UUID,
        actor_id: UUID,
        override: PeriodOverride | None = None,
    ) -> PeriodClearance:
        """
        Clear a document for posting into the period of ``document_date``.

        Raises:
            PeriodLockedError: Period is locked/closed and no override flag.
            InvalidOverrideError: Override flag set but justification too short.
        """
        period_key = period_key_for(document_date)
        status = self.status(tenant_id, company_id, period_key)

        if status not in BLOCKING_STATUSES:
            return PeriodClearance(company_id=company_id, period_key=period_key, status=status.value)

        if override is None or not override.override_closed_period:
            logger.warning(
                "period_locked_rejection",
                extra={
                    "company_id": company_id,
                    "period_key": period_key,
                    "period_status": status.value,
                    "document_type": document_type,
                },
            )
            raise PeriodLockedError(period_key, status.value, action=f"post {document_type}")

        justification = (override.justification or "").strip()
        if len(justification) < self._min_justification_length:
            raise InvalidOverrideError(
                period_key, self._min_justification_length, len(justification)
            )

        audit = self._auditor.record_prior_period_override(
            tenant_id=tenant_id,
            company_id=company_id,
            entity_type=document_type,
            entity_id=document_id,
            period_key=period_key,
            period_status=status.value,
            justification=justification,
            actor_id=actor_id,
            at=self._clock.now(),
        )
        logger.info(
            "period_override_recorded",
            extra={
                "company_id": company_id,
                "period_key": period_key,
                "period_status": status.value,
                "document_type": document_type,
                "document_id": str(document_id),
            },
        )
        return PeriodClearance(
            company_id=company_id,
            period_key=period_key,
            status=status.value,
            overridden=True,
            audit_event_id=audit.id,
        )

    def set_status(
        self,
        *,
        tenant_id: str,
        company_id: str,
        period_key: str,
        status: PeriodStatus,
        actor_id: UUID,
    ) -> AccountingPeriod:
        """
        Move a period to ``status`` and audit the change.

        Raises:
            InvalidPeriodTransitionError: Transition not allowed.
        """
        status = PeriodStatus(status)
        period = self._get_period(tenant_id, company_id, period_key)
        if period is None:
            period = AccountingPeriod(
                tenant_id=tenant_id,
                company_id=company_id,
                period_key=period_key,
                status=PeriodStatus.OPEN,
                created_by_id=actor_id,
            )
            self._session.add(period)
            self._session.flush()

        current = PeriodStatus(period.status)
        if current == status:
            return period
        if status not in _ALLOWED_TRANSITIONS[current]:
            raise InvalidPeriodTransitionError(period_key, current.value, status.value)

        period.status = status
        period.status_changed_at = self._clock.now()
        period.status_changed_by_id = actor_id
        period.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_period_status_change(
            tenant_id=tenant_id,
            company_id=company_id,
            period_id=period.id,
            period_key=period_key,
            from_status=current.value,
            to_status=status.value,
            actor_id=actor_id,
        )
        logger.info(
            "period_status_changed",
            extra={"company_id": company_id, "period_key": period_key,
                   "from_status": current.value, "to_status": status.value},
        )
        return period
