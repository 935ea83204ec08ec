"""
Payment allocation engine -- plans how a payment settles open documents.

Explicit mode:
    Each request is applied at ``min(balance due, requested, payment
    remaining)``.  Excess requested amounts are capped, never redirected to
    another document.  Repeated requests for one document see the balance
    already consumed by earlier requests.

Default mode:
    The single oldest open document (date ascending, then document number)
    receives ``min(balance due, payment amount)``.  No waterfall.

Guarantees:
    - Sum of applied amounts <= payment amount.
    - No planned balance goes below zero.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import round_money

_ZERO = Decimal("0")


@dataclass(frozen=True)
class ApplicationRequest:
    document_id: Any
    amount: Decimal


@dataclass(frozen=True)
class OpenDocument:
    document_id: Any
    document_date: date
    balance_due: Decimal
    document_number: str = ""


@dataclass(frozen=True)
class PlannedApplication:
    document_id: Any
    requested: Decimal
    applied: Decimal
    balance_before: Decimal
    balance_after: Decimal

    @property
    def capped(self) -> bool:
        return self.applied < self.requested


@traced_engine(
    "payment_allocation",
    "1.0",
    fingerprint_fields=("payment_amount", "requests"),
    summarize=lambda r: {"applied_total": sum((p.applied for p in r), Decimal("0")), "applications": len(r)},
)
def plan_explicit_applications(
    *,
    payment_amount: Decimal,
    requests: Sequence[ApplicationRequest],
    balances: Mapping[Any, Decimal],
) -> tuple[PlannedApplication, ...]:
    """Plan explicit applications; unknown documents and zero amounts are skipped."""
    remaining = round_money(payment_amount)
    running = {doc_id: round_money(balance) for doc_id, balance in balances.items()}
    planned: list[PlannedApplication] = []

    for request in requests:
        if request.document_id not in running:
            continue
        requested = round_money(max(request.amount, _ZERO))
        before = running[request.document_id]
        applied = min(before, requested, remaining)
        if applied <= _ZERO:
            continue
        running[request.document_id] = before - applied
        remaining -= applied
        planned.append(
            PlannedApplication(
                document_id=request.document_id,
                requested=requested,
                applied=applied,
                balance_before=before,
                balance_after=before - applied,
            )
        )
    return tuple(planned)


def oldest_open_document(documents: Iterable[OpenDocument]) -> OpenDocument | None:
    candidates = [d for d in documents if d.balance_due > _ZERO]
    if not candidates:
        return None
    return min(candidates, key=lambda d: (d.document_date, d.document_number))


@traced_engine(
    "payment_allocation",
    "1.0",
    fingerprint_fields=("payment_amount",),
    summarize=lambda r: {"target_document_id": r.document_id, "applied": r.applied},
)
def plan_default_application(
    *,
    payment_amount: Decimal,
    documents: Iterable[OpenDocument],
) -> PlannedApplication | None:
    target = oldest_open_document(documents)
    amount = round_money(payment_amount)
    if target is None or amount <= _ZERO:
        return None
    before = round_money(target.balance_due)
    applied = min(before, amount)
    return PlannedApplication(
        document_id=target.document_id,
        requested=amount,
        applied=applied,
        balance_before=before,
        balance_after=before - applied,
    )
