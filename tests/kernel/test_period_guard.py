"""
Period guard tests.

Validates:
- Missing period rows read as OPEN
- LOCKED and CLOSED periods reject postings without an override
- Override justification length policy and its audit record
- Status transition rules (CLOSED is final)
- Fail-open behaviour when the status lookup errors
"""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from ledger_kernel.domain.dtos import PeriodOverride
from ledger_kernel.exceptions import (
    InvalidOverrideError,
    InvalidPeriodTransitionError,
    PeriodLockedError,
)
from ledger_kernel.models.accounting_period import PeriodStatus
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.services.period_guard import PeriodGuard

JAN = date(2025, 1, 10)


@pytest.fixture
def guard(kernel):
    return kernel.period_guard


def _set(guard, tenant_id, company_id, actor_id, status, period_key="2025-01"):
    return guard.set_status(
        tenant_id=tenant_id, company_id=company_id, period_key=period_key,
        status=status, actor_id=actor_id,
    )


def _check(guard, tenant_id, company_id, actor_id, override=None, document_date=JAN):
    return guard.check(
        tenant_id=tenant_id,
        company_id=company_id,
        document_date=document_date,
        document_type="Bill",
        document_id=uuid4(),
        actor_id=actor_id,
        override=override,
    )


class TestStatusResolution:

    def test_missing_period_is_open(self, guard, tenant_id, company_id):
        assert guard.status(tenant_id, company_id, "2030-12") == PeriodStatus.OPEN

    def test_open_period_clears_without_audit(self, guard, kernel, tenant_id, company_id, test_actor_id):
        clearance = _check(guard, tenant_id, company_id, test_actor_id)

        assert clearance.period_key == "2025-01"
        assert clearance.status == PeriodStatus.OPEN.value
        assert not clearance.overridden
        assert clearance.audit_event_id is None

    def test_status_scoped_to_company(self, guard, tenant_id, company_id, test_actor_id):
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)

        assert guard.status(tenant_id, "other-company", "2025-01") == PeriodStatus.OPEN

    def test_lookup_failure_fails_open(self, session, kernel, tenant_id, company_id, test_actor_id, captured_logs):
        def _broken_lookup(tenant, company, period_key):
            raise OperationalError("SELECT", {}, Exception("connection lost"))

        guard = PeriodGuard(session, kernel.auditor, status_lookup=_broken_lookup)

        clearance = _check(guard, tenant_id, company_id, test_actor_id)

        assert clearance.status == PeriodStatus.OPEN.value
        assert any(r["message"] == "period_status_lookup_failed" for r in captured_logs())


class TestBlockedPeriods:

    @pytest.mark.parametrize("status", [PeriodStatus.LOCKED, PeriodStatus.CLOSED])
    def test_blocked_without_override(self, guard, tenant_id, company_id, test_actor_id, status):
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)
        if status == PeriodStatus.CLOSED:
            _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.CLOSED)

        with pytest.raises(PeriodLockedError) as exc_info:
            _check(guard, tenant_id, company_id, test_actor_id)

        assert exc_info.value.period_key == "2025-01"
        assert exc_info.value.status == status.value
        assert exc_info.value.to_dict()["kind"] == "period_locked"

    def test_override_flag_false_is_not_an_override(self, guard, tenant_id, company_id, test_actor_id):
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)

        with pytest.raises(PeriodLockedError):
            _check(guard, tenant_id, company_id, test_actor_id,
                   override=PeriodOverride(False, "a perfectly long justification"))

    def test_short_justification_rejected(self, guard, kernel, tenant_id, company_id, test_actor_id):
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)

        with pytest.raises(InvalidOverrideError) as exc_info:
            _check(guard, tenant_id, company_id, test_actor_id, override=PeriodOverride(True, "too short"))

        assert exc_info.value.min_length == 10
        assert exc_info.value.actual_length == 9
        assert kernel.auditor.events_for_action(company_id, AuditAction.PRIOR_PERIOD_OVERRIDE) == []

    def test_whitespace_does_not_count(self, guard, tenant_id, company_id, test_actor_id):
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)

        with pytest.raises(InvalidOverrideError):
            _check(guard, tenant_id, company_id, test_actor_id, override=PeriodOverride(True, "   short    "))

    def test_valid_override_records_audit(self, guard, kernel, tenant_id, company_id, test_actor_id):
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)

        clearance = _check(
            guard, tenant_id, company_id, test_actor_id,
            override=PeriodOverride(True, "Auditor-requested reclassification"),
        )

        assert clearance.overridden
        events = kernel.auditor.events_for_action(company_id, AuditAction.PRIOR_PERIOD_OVERRIDE)
        assert len(events) == 1
        payload = events[0].payload
        assert payload["adjustmentType"] == "prior_period_override"
        assert payload["justification"] == "Auditor-requested reclassification"
        assert payload["periodKey"] == "2025-01"
        assert payload["periodStatus"] == "locked"
        assert payload["postedBy"] == str(test_actor_id)
        assert events[0].id == clearance.audit_event_id

    def test_configured_minimum_length(self, session, kernel, tenant_id, company_id, test_actor_id):
        guard = PeriodGuard(session, kernel.auditor, min_justification_length=30)
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)

        with pytest.raises(InvalidOverrideError):
            _check(guard, tenant_id, company_id, test_actor_id,
                   override=PeriodOverride(True, "Twenty-two characters!"))


class TestTransitions:

    def test_open_to_locked_to_closed(self, guard, kernel, tenant_id, company_id, test_actor_id):
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)
        period = _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.CLOSED)

        assert PeriodStatus(period.status) == PeriodStatus.CLOSED
        changes = kernel.auditor.events_for_action(company_id, AuditAction.PERIOD_STATUS_CHANGED)
        assert [(e.payload["from"], e.payload["to"]) for e in changes] == [
            ("open", "locked"),
            ("locked", "closed"),
        ]

    def test_locked_can_reopen(self, guard, tenant_id, company_id, test_actor_id):
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)
        period = _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.OPEN)

        assert PeriodStatus(period.status) == PeriodStatus.OPEN
        assert guard.status(tenant_id, company_id, "2025-01") == PeriodStatus.OPEN

    def test_open_cannot_jump_to_closed(self, guard, tenant_id, company_id, test_actor_id):
        with pytest.raises(InvalidPeriodTransitionError):
            _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.CLOSED)

    def test_closed_is_final(self, guard, tenant_id, company_id, test_actor_id):
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.CLOSED)

        for target in (PeriodStatus.OPEN, PeriodStatus.LOCKED):
            with pytest.raises(InvalidPeriodTransitionError):
                _set(guard, tenant_id, company_id, test_actor_id, target)

    def test_same_status_is_noop(self, guard, kernel, tenant_id, company_id, test_actor_id):
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)
        _set(guard, tenant_id, company_id, test_actor_id, PeriodStatus.LOCKED)

        changes = kernel.auditor.events_for_action(company_id, AuditAction.PERIOD_STATUS_CHANGED)
        assert len(changes) == 1
