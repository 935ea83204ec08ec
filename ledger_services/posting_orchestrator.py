"""
ledger_services.posting_orchestrator -- top-level entrypoint for postings.

Responsibility:
    Opens exactly one unit of work per business call, builds the kernel
    services and module services on that unit's session, runs the
    operation, and registers post-commit jobs.  Module services never
    commit; this is the only place a posting transaction begins and ends.

Architecture position:
    Services -- above ledger_modules and ledger_kernel.  Reads engine
    settings from ledger_config and passes the values down.

Invariants enforced:
    - All writes of one call (entry, lines, stock, balances, applications,
      audit events) commit together or not at all.
    - Background jobs and webhooks are enqueued only after commit; their
      failure never touches the committed posting.

Usage:
    orchestrator = PostingOrchestrator(get_session_factory(), job_queue=queue)
    result = orchestrator.post_bill(
        tenant_id="t1", company_id="c1", bill_id=bill_id, actor_id=actor_id,
    )

    with orchestrator.context(tenant_id="t1", company_id="c1", actor_id=actor_id) as ctx:
        bill = ctx.bills.create_bill(...)
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from ledger_config import EngineSettings, get_engine_settings
from ledger_engines.allocation import ApplicationRequest
from ledger_engines.matching import MatchTolerance
from ledger_kernel.db.unit_of_work import UnitOfWork
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import PeriodOverride
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.account_resolver import AccountMappingCache
from ledger_kernel.services.chart_of_accounts import ChartOfAccountsService
from ledger_modules._posting_helpers import DocumentPostingResult, PostingKernel
from ledger_modules.ap.landed_cost import LandedCostService
from ledger_modules.ap.service import BillService
from ledger_modules.ar.service import InvoiceService
from ledger_modules.cash.models import PaymentDirection, PaymentResult
from ledger_modules.cash.service import PaymentService
from ledger_modules.inventory.service import InventoryLedger
from ledger_modules.procurement.matching import ThreeWayMatchService
from ledger_modules.procurement.models import DeliveryResult, MatchResult, MatchStatus
from ledger_modules.procurement.service import ProcurementService
from ledger_services.jobs import JobDispatcher, JobQueue

logger = get_logger("services.posting_orchestrator")


@dataclass(frozen=True)
class PostingContext:
    """Services bound to one open unit of work."""

    uow: UnitOfWork
    kernel: PostingKernel
    chart: ChartOfAccountsService
    bills: BillService
    landed_cost: LandedCostService
    invoices: InvoiceService
    payments: PaymentService
    inventory: InventoryLedger
    procurement: ProcurementService
    matching: ThreeWayMatchService

    @property
    def session(self) -> Session:
        return self.uow.session


class PostingOrchestrator:
    """
    Unit-of-work owner for document postings.

    Contract:
        Each public posting method is one transaction.  ``context()`` opens
        a transaction for callers that compose several module calls.

    Guarantees:
        - The account mapping cache is shared across calls.  Remapping,
          deactivating or deleting through this orchestrator invalidates the
          company's entries; ``invalidate_account_cache`` covers changes made
          elsewhere.
        - Without a job queue no background work is scheduled.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        job_queue: JobQueue | None = None,
        account_cache: AccountMappingCache | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or get_engine_settings()
        self._clock = clock or SystemClock()
        self._account_cache = account_cache or AccountMappingCache()
        self._dispatcher = (
            JobDispatcher(
                job_queue,
                post_commit_jobs=self._settings.jobs.post_commit,
                webhook_events=self._settings.jobs.webhook_events,
            )
            if job_queue is not None
            else None
        )

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    def invalidate_account_cache(self, tenant_id: str | None = None, company_id: str | None = None) -> None:
        self._account_cache.invalidate(tenant_id, company_id)

    @contextmanager
    def context(
        self,
        *,
        tenant_id: str,
        company_id: str,
        actor_id: UUID | None = None,
        correlation_id: str | None = None,
        document_id: UUID | None = None,
    ) -> Iterator[PostingContext]:
        """Open one unit of work and yield the services bound to it."""
        with LogContext.bind(
            correlation_id=correlation_id or str(uuid4()),
            tenant_id=tenant_id,
            company_id=company_id,
            actor_id=actor_id,
            document_id=document_id,
        ):
            with UnitOfWork(self._session_factory) as uow:
                kernel = PostingKernel.build(
                    uow.session,
                    self._clock,
                    account_cache=self._account_cache,
                    min_justification_length=self._settings.periods.min_justification_length,
                )
                yield PostingContext(
                    uow=uow,
                    kernel=kernel,
                    chart=ChartOfAccountsService(uow.session, self._account_cache),
                    bills=BillService(kernel),
                    landed_cost=LandedCostService(kernel),
                    invoices=InvoiceService(kernel),
                    payments=PaymentService(kernel),
                    inventory=InventoryLedger(uow.session, self._clock),
                    procurement=ProcurementService(kernel),
                    matching=ThreeWayMatchService(
                        kernel,
                        MatchTolerance(
                            pct=self._settings.tolerance.pct,
                            abs=self._settings.tolerance.abs,
                        ),
                    ),
                )

    def _after_commit(
        self,
        uow: UnitOfWork,
        *,
        tenant_id: str,
        company_id: str,
        document_type: str,
        document_id: Any,
        event: str | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if self._dispatcher is None:
            return
        dispatcher = self._dispatcher
        uow.after_commit(
            lambda: dispatcher.dispatch(
                tenant_id=tenant_id,
                company_id=company_id,
                document_type=document_type,
                document_id=document_id,
                event=event,
                details=details,
            ),
            name=f"dispatch:{event or document_type}",
        )

    # =========================================================================
    # Postings
    # =========================================================================

    def post_bill(
        self,
        *,
        tenant_id: str,
        company_id: str,
        bill_id: UUID,
        actor_id: UUID,
        override: PeriodOverride | None = None,
    ) -> DocumentPostingResult:
        with self.context(tenant_id=tenant_id, company_id=company_id, actor_id=actor_id, document_id=bill_id) as ctx:
            result = ctx.bills.post_bill(
                tenant_id=tenant_id, company_id=company_id, bill_id=bill_id,
                actor_id=actor_id, override=override,
            )
            self._after_commit(
                ctx.uow, tenant_id=tenant_id, company_id=company_id,
                document_type="Bill", document_id=bill_id, event="bill.posted",
                details={"total_amount": str(result.total_amount)},
            )
        return result

    def post_invoice(
        self,
        *,
        tenant_id: str,
        company_id: str,
        invoice_id: UUID,
        actor_id: UUID,
        override: PeriodOverride | None = None,
    ) -> DocumentPostingResult:
        with self.context(tenant_id=tenant_id, company_id=company_id, actor_id=actor_id, document_id=invoice_id) as ctx:
            result = ctx.invoices.post_invoice(
                tenant_id=tenant_id, company_id=company_id, invoice_id=invoice_id,
                actor_id=actor_id, override=override,
            )
            self._after_commit(
                ctx.uow, tenant_id=tenant_id, company_id=company_id,
                document_type="Invoice", document_id=invoice_id, event="invoice.posted",
                details={"total_amount": str(result.total_amount)},
            )
        return result

    def record_payment(
        self,
        *,
        tenant_id: str,
        company_id: str,
        direction: PaymentDirection,
        amount: Decimal,
        actor_id: UUID,
        applications: Sequence[ApplicationRequest] | None = None,
        **kwargs: Any,
    ) -> PaymentResult:
        """Record a payment; extra keyword arguments go to ``PaymentService.record_payment``."""
        with self.context(tenant_id=tenant_id, company_id=company_id, actor_id=actor_id) as ctx:
            result = ctx.payments.record_payment(
                tenant_id=tenant_id, company_id=company_id, direction=direction,
                amount=amount, actor_id=actor_id, applications=applications, **kwargs,
            )
            self._after_commit(
                ctx.uow, tenant_id=tenant_id, company_id=company_id,
                document_type="Payment", document_id=result.payment_id, event="payment.recorded",
                details={"amount": str(result.amount), "applied": str(result.applied_amount)},
            )
        return result

    def deliver_purchase_order(
        self,
        *,
        tenant_id: str,
        company_id: str,
        purchase_order_id: UUID,
        actor_id: UUID,
    ) -> DeliveryResult:
        with self.context(
            tenant_id=tenant_id, company_id=company_id, actor_id=actor_id, document_id=purchase_order_id
        ) as ctx:
            result = ctx.procurement.deliver(
                tenant_id=tenant_id, company_id=company_id,
                purchase_order_id=purchase_order_id, actor_id=actor_id,
            )
            self._after_commit(
                ctx.uow, tenant_id=tenant_id, company_id=company_id,
                document_type="PurchaseOrder", document_id=purchase_order_id,
                event="purchase_order.delivered",
            )
        return result

    def match_purchase_order(
        self,
        *,
        tenant_id: str,
        company_id: str,
        purchase_order_id: UUID,
        bill_id: UUID,
        actor_id: UUID,
    ) -> MatchResult:
        with self.context(
            tenant_id=tenant_id, company_id=company_id, actor_id=actor_id, document_id=purchase_order_id
        ) as ctx:
            result = ctx.matching.match(
                tenant_id=tenant_id, company_id=company_id,
                purchase_order_id=purchase_order_id, bill_id=bill_id, actor_id=actor_id,
            )
            if result.status == MatchStatus.EXCEPTION:
                self._after_commit(
                    ctx.uow, tenant_id=tenant_id, company_id=company_id,
                    document_type="PurchaseOrder", document_id=purchase_order_id,
                    event="three_way_match.exception",
                    details={"bill_id": str(bill_id), "diff": str(result.diff)},
                )
        logger.info(
            "purchase_order_match_committed",
            extra={"purchase_order_id": str(purchase_order_id), "match_status": result.status.value},
        )
        return result
