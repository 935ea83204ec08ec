"""
AuditorService -- hash-chained, append-only audit trail.

Responsibility:
    Records audit events for overrides, match exceptions and their
    resolutions, period status changes and document postings.  Each event
    links to its predecessor through ``prev_hash``.

Invariants enforced:
    - Append-only: events are flushed once and never updated.
    - seq comes from SequenceService (counter row).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).

Failure modes:
    - AuditChainBrokenError from validate_chain() when a stored hash or
      link does not match the recomputed value.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import AuditChainBrokenError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction, AuditEvent
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_document

logger = get_logger("services.auditor")


class AuditorService:
    """
    Records tamper-evident audit events.

    Contract:
        Domain-specific ``record_*`` methods build the payload; all of them
        go through ``record()``.

    Non-goals:
        - Does NOT commit; the caller's unit of work does.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def record(
        self,
        *,
        tenant_id: str,
        company_id: str,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Append one audit event to the chain and flush it.

        Payload values are canonicalized (Decimal, UUID, datetime become
        strings) before storage so the stored document hashes identically
        on every read.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = to_json_document(payload or {})
        payload_hash = hash_payload(payload_data)
        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=AuditAction(action).value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            tenant_id=tenant_id,
            company_id=company_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": AuditAction(action).value,
                "seq": seq,
            },
        )
        return audit_event

    # Domain-specific recorders

    def record_prior_period_override(
        self,
        *,
        tenant_id: str,
        company_id: str,
        entity_type: str,
        entity_id: UUID,
        period_key: str,
        period_status: str,
        justification: str,
        actor_id: UUID,
        at: datetime,
    ) -> AuditEvent:
        return self.record(
            tenant_id=tenant_id,
            company_id=company_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.PRIOR_PERIOD_OVERRIDE,
            actor_id=actor_id,
            payload={
                "adjustmentType": "prior_period_override",
                "periodKey": period_key,
                "periodStatus": period_status,
                "justification": justification,
                "postedBy": actor_id,
                "at": at,
            },
        )

    def record_document_posted(
        self,
        *,
        tenant_id: str,
        company_id: str,
        document_type: str,
        document_id: UUID,
        journal_entry_id: UUID | None,
        actor_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        payload: dict[str, Any] = {"journalEntryId": journal_entry_id}
        payload.update(details or {})
        return self.record(
            tenant_id=tenant_id,
            company_id=company_id,
            entity_type=document_type,
            entity_id=document_id,
            action=AuditAction.DOCUMENT_POSTED,
            actor_id=actor_id,
            payload=payload,
        )

    def record_period_status_change(
        self,
        *,
        tenant_id: str,
        company_id: str,
        period_id: UUID,
        period_key: str,
        from_status: str,
        to_status: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return self.record(
            tenant_id=tenant_id,
            company_id=company_id,
            entity_type="AccountingPeriod",
            entity_id=period_id,
            action=AuditAction.PERIOD_STATUS_CHANGED,
            actor_id=actor_id,
            payload={"periodKey": period_key, "from": from_status, "to": to_status},
        )

    # Verification and queries

    def validate_chain(self) -> bool:
        """
        Recompute every hash in seq order and check the links.

        Raises:
            AuditChainBrokenError: At the first mismatching event.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        previous: AuditEvent | None = None
        for event in events:
            expected_prev = previous.hash if previous is not None else None
            if event.prev_hash != expected_prev:
                logger.critical("audit_chain_broken", extra={"audit_event_id": str(event.id)})
                raise AuditChainBrokenError(
                    str(event.id), expected_prev or "None", event.prev_hash or "None"
                )
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=AuditAction(event.action).value,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash or hash_payload(event.payload or {}) != event.payload_hash:
                logger.critical("audit_chain_broken", extra={"audit_event_id": str(event.id)})
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)
            previous = event

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        """All events for one entity, oldest first."""
        return list(
            self._session.execute(
                select(AuditEvent)
                .where(
                    AuditEvent.entity_type == entity_type,
                    AuditEvent.entity_id == entity_id,
                )
                .order_by(AuditEvent.seq)
            ).scalars()
        )

    def events_for_action(self, company_id: str, action: AuditAction) -> list[AuditEvent]:
        return list(
            self._session.execute(
                select(AuditEvent)
                .where(AuditEvent.company_id == company_id, AuditEvent.action == action)
                .order_by(AuditEvent.seq)
            ).scalars()
        )
