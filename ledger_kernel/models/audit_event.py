"""
Module: ledger_kernel.models.audit_event
Responsibility: Append-only, hash-chained audit log.
Architecture position: Kernel > Models.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      computed by AuditorService.  prev_hash is None only for genesis.
    - seq is strictly increasing (SequenceService counter row).

Audit relevance:
    Prior-period overrides, three-way match exceptions and their
    resolutions, period status changes and document postings are all
    recorded here.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Closed set of audited actions."""

    JOURNAL_POSTED = "journal_posted"
    DOCUMENT_POSTED = "document_posted"
    PAYMENT_APPLIED = "payment_applied"
    PRIOR_PERIOD_OVERRIDE = "prior_period_override"
    PERIOD_STATUS_CHANGED = "period_status_changed"
    LANDED_COST_ALLOCATED = "landed_cost_allocated"
    PURCHASE_ORDER_DELIVERED = "purchase_order_delivered"
    THREE_WAY_MATCH_EXCEPTION = "three_way_match_exception"
    THREE_WAY_MATCH_EXCEPTION_RESOLVED = "three_way_match_exception_resolved"
    THREE_WAY_MATCH_EXCEPTION_APPROVED = "three_way_match_exception_approved"
    THREE_WAY_MATCH_EXCEPTION_REJECTED = "three_way_match_exception_rejected"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Contract:
        Append-only.  Each row's hash includes the previous row's hash.

    Non-goals:
        - Hash correctness is not checked at INSERT time; AuditorService
          computes it and validate_chain() verifies it.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_company", "company_id"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    company_id: Mapped[str] = mapped_column(String(64), nullable=False)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[AuditAction] = mapped_column(String(60), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
