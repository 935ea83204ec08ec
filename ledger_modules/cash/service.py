"""
Payment Service (``ledger_modules.cash.service``).

Responsibility
--------------
Records customer receipts and vendor disbursements, posts their cash
journal entry and applies them against open invoices or bills.

Journal shapes (``fx`` is the signed ``fx_gain_loss``)::

    receivable:  Dr CASH    amount
                     Cr AR       amount - fx
                     Cr FX_GAIN  fx          (fx > 0)
                 Dr FX_LOSS  |fx|            (fx < 0)

    payable:     Dr AP      amount + fx
                     Cr CASH     amount
                     Cr FX_GAIN  fx          (fx > 0)
                 Dr FX_LOSS  |fx|            (fx < 0)

The settled AR/AP amount absorbs the exchange difference so every entry
balances; document applications always use the payment amount.

Ordering
--------
period check -> account resolution -> balanced entry -> applications
-> audit.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from ledger_engines.allocation import ApplicationRequest
from ledger_kernel.db.types import round_money
from ledger_kernel.domain.dtos import LineSpec, PeriodOverride
from ledger_kernel.exceptions import InvalidDocumentError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountPurpose
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.services.account_resolver import AccountRef
from ledger_modules._posting_helpers import PostingKernel, load_scoped
from ledger_modules.cash.application import PaymentApplicationEngine
from ledger_modules.cash.models import ApplicationRecord, PaymentDirection, PaymentMethod, PaymentResult
from ledger_modules.cash.orm import PaymentModel

logger = get_logger("modules.cash.service")

DOCUMENT_TYPE = "Payment"

_ZERO = Decimal("0")


class PaymentService:
    """
    Payment recording and application.

    Contract
    --------
    ``record_payment`` writes the payment, its posted journal entry and its
    applications in the caller's unit of work.  ``apply_payment`` applies
    the remaining unapplied amount of an existing payment.
    """

    def __init__(self, kernel: PostingKernel):
        self._kernel = kernel
        self._session = kernel.session
        self._applications = PaymentApplicationEngine(kernel.session, kernel.clock)

    @staticmethod
    def _journal_lines(
        direction: PaymentDirection,
        amount: Decimal,
        fx: Decimal,
        accounts: dict[AccountPurpose, AccountRef],
    ) -> list[LineSpec]:
        cash = accounts[AccountPurpose.CASH].account_id
        if direction is PaymentDirection.RECEIVABLE:
            specs = [
                LineSpec(account_id=cash, debit=amount, memo="Cash received"),
                LineSpec(account_id=accounts[AccountPurpose.AR].account_id, credit=amount - fx, memo="Receivable settled"),
            ]
        else:
            specs = [
                LineSpec(account_id=accounts[AccountPurpose.AP].account_id, debit=amount + fx, memo="Payable settled"),
                LineSpec(account_id=cash, credit=amount, memo="Cash paid"),
            ]
        if fx > _ZERO:
            specs.append(LineSpec(account_id=accounts[AccountPurpose.FX_GAIN].account_id, credit=fx, memo="FX gain"))
        elif fx < _ZERO:
            specs.append(LineSpec(account_id=accounts[AccountPurpose.FX_LOSS].account_id, debit=abs(fx), memo="FX loss"))
        return specs

    def record_payment(
        self,
        *,
        tenant_id: str,
        company_id: str,
        direction: PaymentDirection,
        amount: Decimal,
        payment_date: date,
        actor_id: UUID,
        method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        reference: str | None = None,
        currency: str = "USD",
        counterparty_id: str | None = None,
        document_id: UUID | None = None,
        applications: Sequence[ApplicationRequest] | None = None,
        fx_gain_loss: Decimal = _ZERO,
        bank_transaction_id: str | None = None,
        override: PeriodOverride | None = None,
    ) -> PaymentResult:
        """
        Record, post and apply a payment.

        ``document_id`` links the payment to its source document; without
        explicit ``applications`` the full amount is requested against that
        document.  With neither, the oldest open document is settled.

        Raises:
            InvalidDocumentError: Non-positive amount, or an FX difference
                that leaves nothing to settle.
            PeriodLockedError, InvalidOverrideError, MissingAccountsError,
            DocumentNotFoundError.
        """
        kernel = self._kernel
        direction = PaymentDirection(direction)
        amount = round_money(amount)
        fx = round_money(fx_gain_loss)
        if amount <= _ZERO:
            raise InvalidDocumentError(DOCUMENT_TYPE, f"payment amount must be positive (got {amount})")
        settled = amount - fx if direction is PaymentDirection.RECEIVABLE else amount + fx
        if settled <= _ZERO:
            raise InvalidDocumentError(DOCUMENT_TYPE, f"FX difference {fx} exceeds the payment amount {amount}")

        payment_id = uuid4()
        clearance = kernel.period_guard.check(
            tenant_id=tenant_id,
            company_id=company_id,
            document_date=payment_date,
            document_type=DOCUMENT_TYPE,
            document_id=payment_id,
            actor_id=actor_id,
            override=override,
        )

        purposes = [
            AccountPurpose.CASH,
            AccountPurpose.AR if direction is PaymentDirection.RECEIVABLE else AccountPurpose.AP,
        ]
        if fx > _ZERO:
            purposes.append(AccountPurpose.FX_GAIN)
        elif fx < _ZERO:
            purposes.append(AccountPurpose.FX_LOSS)
        accounts = kernel.resolver.require(tenant_id, company_id, purposes)

        payment = PaymentModel(
            id=payment_id,
            tenant_id=tenant_id,
            company_id=company_id,
            direction=direction.value,
            payment_date=payment_date,
            amount=amount,
            applied_amount=_ZERO,
            currency=currency,
            method=PaymentMethod(method).value,
            reference=reference,
            counterparty_id=counterparty_id,
            document_type=direction.document_type if document_id else None,
            document_id=document_id,
            bank_transaction_id=bank_transaction_id,
            fx_gain_loss=fx,
            created_by_id=actor_id,
        )
        self._session.add(payment)
        self._session.flush()

        entry = kernel.journal.create_entry(
            tenant_id=tenant_id,
            company_id=company_id,
            entry_date=payment_date,
            actor_id=actor_id,
            memo=f"{direction.value.capitalize()} payment {reference or ''}".strip(),
            reference=reference,
            source_document_type=DOCUMENT_TYPE,
            source_document_id=payment.id,
        )
        kernel.journal.add_lines(entry, self._journal_lines(direction, amount, fx, accounts))
        posted = kernel.journal.post(entry, actor_id, clearance=clearance, document_type=DOCUMENT_TYPE)
        payment.journal_entry_id = posted.entry_id

        if not applications and document_id is not None:
            applications = [ApplicationRequest(document_id=document_id, amount=amount)]
        records = self._apply(payment, actor_id, applications)

        logger.info(
            "payment_recorded",
            extra={
                "payment_id": str(payment.id),
                "direction": direction.value,
                "amount": amount,
                "fx_gain_loss": fx,
                "entry_id": str(posted.entry_id),
                "applied": payment.applied_amount,
            },
        )
        return PaymentResult(
            payment_id=payment.id,
            journal_entry_id=posted.entry_id,
            amount=amount,
            applications=tuple(records),
            unapplied_amount=payment.unapplied_amount,
            period_key=clearance.period_key,
            override_audit_event_id=clearance.audit_event_id,
        )

    def apply_payment(
        self,
        *,
        tenant_id: str,
        company_id: str,
        payment_id: UUID,
        actor_id: UUID,
        applications: Sequence[ApplicationRequest] | None = None,
    ) -> list[ApplicationRecord]:
        """Apply what is left of an already recorded payment."""
        payment = load_scoped(
            self._session, PaymentModel, payment_id, tenant_id, company_id,
            document_type=DOCUMENT_TYPE, for_update=True,
        )
        return self._apply(payment, actor_id, applications)

    def _apply(
        self,
        payment: PaymentModel,
        actor_id: UUID,
        applications: Sequence[ApplicationRequest] | None,
    ) -> list[ApplicationRecord]:
        records = self._applications.apply_payment(payment, actor_id, applications)
        for record in records:
            self._kernel.auditor.record(
                tenant_id=payment.tenant_id,
                company_id=payment.company_id,
                entity_type=record.document_type,
                entity_id=record.document_id,
                action=AuditAction.PAYMENT_APPLIED,
                actor_id=actor_id,
                payload={
                    "paymentId": payment.id,
                    "requested": record.requested,
                    "applied": record.amount_applied,
                    "balanceAfter": record.balance_after,
                },
            )
        return records

    def get_payment(self, tenant_id: str, company_id: str, payment_id: UUID) -> PaymentModel:
        return load_scoped(self._session, PaymentModel, payment_id, tenant_id, company_id, document_type=DOCUMENT_TYPE)
