"""
PaymentApplicationEngine -- settles open bills or invoices from a payment.

Responsibility:
    Turns a payment into PaymentApplication rows and decrements each target
    document's balance due in the same flush.  The allocation plan comes
    from ``ledger_engines.allocation``.

Modes:
    Explicit -- each requested (document, amount) pair is applied at
        min(balance due, requested, payment remaining).  Over-requests are
        capped, not redirected.
    Default  -- no requests: the single oldest open document of the
        payment's type (invoices for receivable payments, bills for payable
        payments) receives min(balance due, payment remaining).

Invariants:
    - Sum of applications for a payment <= payment amount.
    - A document's balance due never increases and never goes negative.
    - Application rows are append-only.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engines.allocation import (
    ApplicationRequest,
    OpenDocument,
    PlannedApplication,
    plan_default_application,
    plan_explicit_applications,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import InvalidDocumentError
from ledger_kernel.logging_config import get_logger
from ledger_modules._posting_helpers import OPEN_STATUSES, DocumentStatus, load_scoped, settle_balance
from ledger_modules.ap.orm import BillModel
from ledger_modules.ar.orm import InvoiceModel
from ledger_modules.cash.models import ApplicationRecord, PaymentDirection
from ledger_modules.cash.orm import PaymentApplicationModel, PaymentModel

logger = get_logger("modules.cash.application")

_ZERO = Decimal("0")

# Documents that can never take an application.
_UNAPPLIABLE = frozenset({DocumentStatus.DRAFT.value, DocumentStatus.CANCELLED.value})


class PaymentApplicationEngine:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    @staticmethod
    def _document_model(direction: PaymentDirection):
        return InvoiceModel if direction is PaymentDirection.RECEIVABLE else BillModel

    @staticmethod
    def _counterparty_column(model):
        return model.customer_id if model is InvoiceModel else model.vendor_id

    @staticmethod
    def _document_date(document) -> date:
        return document.invoice_date if isinstance(document, InvoiceModel) else document.bill_date

    @staticmethod
    def _document_number(document) -> str:
        return document.invoice_number if isinstance(document, InvoiceModel) else document.bill_number

    def apply_payment(
        self,
        payment: PaymentModel,
        actor_id: UUID,
        applications: Sequence[ApplicationRequest] | None = None,
    ) -> list[ApplicationRecord]:
        """
        Apply the payment's unapplied amount.

        Raises:
            DocumentNotFoundError: An explicit target is unknown to the company.
            InvalidDocumentError: An explicit target is draft or cancelled.
        """
        direction = PaymentDirection(payment.direction)
        model = self._document_model(direction)
        remaining = payment.amount - payment.applied_amount
        if remaining <= _ZERO:
            return []

        documents: dict[UUID, object]
        if applications:
            documents = {}
            for request in applications:
                if request.document_id in documents:
                    continue
                document = load_scoped(
                    self._session, model, request.document_id, payment.tenant_id, payment.company_id,
                    document_type=direction.document_type, for_update=True,
                )
                if document.status in _UNAPPLIABLE:
                    raise InvalidDocumentError(
                        direction.document_type,
                        f"cannot apply a payment to a {document.status} document",
                    )
                documents[document.id] = document
            planned = plan_explicit_applications(
                payment_amount=remaining,
                requests=applications,
                balances={doc_id: doc.balance_due for doc_id, doc in documents.items()},
            )
        else:
            documents = {doc.id: doc for doc in self._open_documents(payment, model)}
            single = plan_default_application(
                payment_amount=remaining,
                documents=[
                    OpenDocument(
                        document_id=doc.id,
                        document_date=self._document_date(doc),
                        balance_due=doc.balance_due,
                        document_number=self._document_number(doc),
                    )
                    for doc in documents.values()
                ],
            )
            planned = (single,) if single is not None else ()

        records = [self._write(payment, documents[plan.document_id], plan, direction, actor_id) for plan in planned]
        self._session.flush()

        for plan in planned:
            if plan.capped:
                logger.warning(
                    "payment_application_capped",
                    extra={
                        "payment_id": str(payment.id),
                        "document_id": str(plan.document_id),
                        "requested": plan.requested,
                        "applied": plan.applied,
                    },
                )
        logger.info(
            "payment_applied",
            extra={
                "payment_id": str(payment.id),
                "application_count": len(records),
                "applied_total": sum((r.amount_applied for r in records), _ZERO),
                "mode": "explicit" if applications else "default",
            },
        )
        return records

    def _open_documents(self, payment: PaymentModel, model) -> list:
        stmt = select(model).where(
            model.tenant_id == payment.tenant_id,
            model.company_id == payment.company_id,
            model.status.in_([s.value for s in OPEN_STATUSES]),
            model.balance_due > _ZERO,
        )
        if payment.counterparty_id:
            stmt = stmt.where(self._counterparty_column(model) == payment.counterparty_id)
        return list(self._session.execute(stmt.with_for_update()).scalars())

    def _write(
        self,
        payment: PaymentModel,
        document,
        plan: PlannedApplication,
        direction: PaymentDirection,
        actor_id: UUID,
    ) -> ApplicationRecord:
        settle_balance(document, plan.applied, actor_id)
        payment.applied_amount = payment.applied_amount + plan.applied
        row = PaymentApplicationModel(
            tenant_id=payment.tenant_id,
            company_id=payment.company_id,
            payment_id=payment.id,
            document_type=direction.document_type,
            document_id=document.id,
            amount_requested=plan.requested,
            amount_applied=plan.applied,
            balance_before=plan.balance_before,
            balance_after=document.balance_due,
            applied_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._session.add(row)
        self._session.flush()
        return ApplicationRecord(
            application_id=row.id,
            payment_id=payment.id,
            document_type=direction.document_type,
            document_id=document.id,
            requested=plan.requested,
            amount_applied=plan.applied,
            balance_after=document.balance_due,
        )
