"""
Module: ledger_kernel.db.immutability
Responsibility: ORM event listeners enforcing append-only persistence.

Rules:
    - JournalEntry: once POSTED, no field may change (audit metadata
      updated_at/updated_by_id excepted) and it cannot be deleted.  The
      DRAFT -> POSTED flush itself is allowed.
    - JournalLine: no insert, update or delete when its entry is POSTED.
    - AuditEvent, InventoryMovement, PaymentApplication, MatchException,
      MatchResolution: never updated or deleted.

If a check fails, ImmutabilityViolationError is raised from inside the
flush and the caller's unit of work rolls back.
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError

_AUDIT_METADATA = frozenset({"updated_at", "updated_by_id"})

_registered: list[tuple[type, str, object]] = []


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _AUDIT_METADATA and attr.history.has_changes()
    ]


def _check_journal_entry_update(mapper, connection, target):
    from ledger_kernel.models.journal import JournalEntryStatus

    status_history = get_history(target, "status")
    if status_history.deleted:
        was_posted = status_history.deleted[0] == JournalEntryStatus.POSTED
    elif not status_history.added:
        was_posted = target.status == JournalEntryStatus.POSTED
    else:
        was_posted = False

    if was_posted:
        changed = [f for f in _changed_fields(target) if f != "lines"]
        if changed:
            raise ImmutabilityViolationError(
                "JournalEntry",
                str(target.id),
                f"posted entries cannot be modified (fields: {', '.join(changed)})",
            )


def _check_journal_entry_delete(mapper, connection, target):
    from ledger_kernel.models.journal import JournalEntryStatus

    if target.status == JournalEntryStatus.POSTED:
        raise ImmutabilityViolationError(
            "JournalEntry", str(target.id), "posted entries cannot be deleted"
        )


def _entry_is_posted(connection, entry_id) -> bool:
    from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus

    status = connection.execute(
        select(JournalEntry.status).where(JournalEntry.id == entry_id)
    ).scalar_one_or_none()
    return status == JournalEntryStatus.POSTED


def _check_journal_line_write(mapper, connection, target):
    if target.journal_entry_id is not None and _entry_is_posted(connection, target.journal_entry_id):
        raise ImmutabilityViolationError(
            "JournalLine",
            str(target.id),
            "lines of a posted entry cannot be added, modified or deleted",
        )


def _append_only(entity_type: str):
    def _reject_update(mapper, connection, target):
        if _changed_fields(target):
            raise ImmutabilityViolationError(
                entity_type, str(target.id), f"{entity_type} records are append-only"
            )

    def _reject_delete(mapper, connection, target):
        raise ImmutabilityViolationError(
            entity_type, str(target.id), f"{entity_type} records cannot be deleted"
        )

    return _reject_update, _reject_delete


def _listen(target, name, fn) -> None:
    if not event.contains(target, name, fn):
        event.listen(target, name, fn)
        _registered.append((target, name, fn))


def register_immutability_listeners() -> None:
    """
    Register all immutability listeners.  Idempotent.

    Call after all models are importable and before any write.
    """
    from ledger_kernel.models.audit_event import AuditEvent
    from ledger_kernel.models.journal import JournalEntry, JournalLine
    from ledger_modules.cash.orm import PaymentApplicationModel
    from ledger_modules.inventory.orm import InventoryMovementModel
    from ledger_modules.procurement.orm import MatchExceptionModel, MatchResolutionModel

    if _registered:
        return

    _listen(JournalEntry, "before_update", _check_journal_entry_update)
    _listen(JournalEntry, "before_delete", _check_journal_entry_delete)

    _listen(JournalLine, "before_insert", _check_journal_line_write)
    _listen(JournalLine, "before_update", _check_journal_line_write)
    _listen(JournalLine, "before_delete", _check_journal_line_write)

    for model, entity_type in (
        (AuditEvent, "AuditEvent"),
        (InventoryMovementModel, "InventoryMovement"),
        (PaymentApplicationModel, "PaymentApplication"),
        (MatchExceptionModel, "MatchException"),
        (MatchResolutionModel, "MatchResolution"),
    ):
        reject_update, reject_delete = _append_only(entity_type)
        _listen(model, "before_update", reject_update)
        _listen(model, "before_delete", reject_delete)


def unregister_immutability_listeners() -> None:
    """Remove every listener registered above. FOR TESTING ONLY."""
    while _registered:
        target, name, fn = _registered.pop()
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
