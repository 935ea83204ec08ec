"""
Pytest fixtures for the ledger test suite.

Provides:
- One engine and schema per test session
- Per-test sessions isolated by an outer transaction that is rolled back
- A standard chart of accounts, kernel services and module services
- Structured log capture

Environment Variables:
- DATABASE_URL: database to test against.  Defaults to an in-memory
  SQLite database; set a postgresql:// URL to run against PostgreSQL.
"""

import json
import logging
import os
from collections.abc import Callable, Generator
from decimal import Decimal
from io import StringIO
from uuid import UUID

import pytest
from sqlalchemy.orm import Session

from ledger_config import EngineSettings, get_engine_settings
from ledger_engines.stock import MovementType
from ledger_kernel.db.engine import create_tables, drop_tables, init_engine_from_url, reset_engine
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.account import AccountPurpose
from ledger_kernel.services.chart_of_accounts import ChartOfAccountsService
from ledger_modules._posting_helpers import PostingKernel
from ledger_modules.ap.landed_cost import LandedCostService
from ledger_modules.ap.service import BillService
from ledger_modules.ar.service import InvoiceService
from ledger_modules.cash.service import PaymentService
from ledger_modules.inventory.models import ProductType
from ledger_modules.inventory.orm import ProductModel
from ledger_modules.inventory.service import InventoryLedger
from ledger_modules.procurement.matching import ThreeWayMatchService
from ledger_modules.procurement.service import ProcurementService
from ledger_services import InMemoryJobQueue, PostingOrchestrator
from tests.helpers import COMPANY_ID, TENANT_ID, TEST_ACTOR_ID, seed_chart_of_accounts

DEFAULT_DATABASE_URL = "sqlite://"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, bill_service):
            bill_service.post_bill(...)
            logs = captured_logs()
            assert any(r["message"] == "bill_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session and register immutability listeners."""
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


# =============================================================================
# Per-test isolation
# =============================================================================


@pytest.fixture
def db_connection(db_engine, db_tables):
    """Connection holding the outer transaction rolled back at teardown."""
    conn = db_engine.connect()
    trans = conn.begin()
    yield conn
    try:
        trans.rollback()
    finally:
        conn.close()


@pytest.fixture
def session_factory(db_connection) -> Callable[[], Session]:
    """
    Session factory joined to the test's outer transaction.

    ``commit()`` on a session from this factory releases a savepoint;
    nothing reaches the database past the test.  Hand it to a
    UnitOfWork or PostingOrchestrator.
    """

    def _factory() -> Session:
        return Session(bind=db_connection, join_transaction_mode="create_savepoint", expire_on_commit=False)

    return _factory


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """Provide a database session for testing."""
    sess = session_factory()
    yield sess
    sess.close()


# =============================================================================
# Identity and time
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def tenant_id() -> str:
    return TENANT_ID


@pytest.fixture
def company_id() -> str:
    return COMPANY_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock fixed at 2025-01-15 12:00 UTC."""
    return DeterministicClock()


# =============================================================================
# Kernel and module services
# =============================================================================


@pytest.fixture
def kernel(session, deterministic_clock) -> PostingKernel:
    return PostingKernel.build(session, deterministic_clock)


@pytest.fixture
def standard_accounts(session) -> dict[AccountPurpose, UUID]:
    """Standard chart of accounts with every purpose mapped."""
    return seed_chart_of_accounts(session)


@pytest.fixture
def chart(session) -> ChartOfAccountsService:
    return ChartOfAccountsService(session)


@pytest.fixture
def inventory(session, deterministic_clock) -> InventoryLedger:
    return InventoryLedger(session, deterministic_clock)


@pytest.fixture
def bill_service(kernel) -> BillService:
    return BillService(kernel)


@pytest.fixture
def landed_cost_service(kernel) -> LandedCostService:
    return LandedCostService(kernel)


@pytest.fixture
def invoice_service(kernel) -> InvoiceService:
    return InvoiceService(kernel)


@pytest.fixture
def payment_service(kernel) -> PaymentService:
    return PaymentService(kernel)


@pytest.fixture
def procurement_service(kernel) -> ProcurementService:
    return ProcurementService(kernel)


@pytest.fixture
def match_service(kernel) -> ThreeWayMatchService:
    return ThreeWayMatchService(kernel)


@pytest.fixture
def make_product(inventory):
    """
    Factory fixture creating a product, optionally with opening stock.

    Opening stock is booked as an ADJUSTMENT_IN movement at the product's
    default location (if any).
    """

    counter = {"n": 0}

    def _make(
        *,
        sku: str | None = None,
        cost_price: str = "0",
        sale_price: str = "0",
        product_type: ProductType = ProductType.INVENTORY,
        default_location_id: UUID | None = None,
        stock: str | None = None,
        tenant_id: str = TENANT_ID,
        company_id: str = COMPANY_ID,
    ) -> ProductModel:
        counter["n"] += 1
        product = inventory.create_product(
            tenant_id=tenant_id,
            company_id=company_id,
            sku=sku or f"SKU-{counter['n']:03d}",
            name=f"Product {counter['n']}",
            actor_id=TEST_ACTOR_ID,
            product_type=product_type,
            cost_price=Decimal(cost_price),
            sale_price=Decimal(sale_price),
            default_location_id=default_location_id,
        )
        if stock is not None:
            inventory.record_movement(
                tenant_id=tenant_id,
                company_id=company_id,
                product_id=product.id,
                movement_type=MovementType.ADJUSTMENT_IN,
                quantity=Decimal(stock),
                actor_id=TEST_ACTOR_ID,
                reference="opening-stock",
            )
        return product

    return _make


# =============================================================================
# Services layer
# =============================================================================


@pytest.fixture
def engine_settings() -> EngineSettings:
    """Bundled defaults with no environment overrides."""
    return get_engine_settings(environ={})


@pytest.fixture
def job_queue(deterministic_clock) -> InMemoryJobQueue:
    return InMemoryJobQueue(clock=deterministic_clock)


@pytest.fixture
def orchestrator(session_factory, engine_settings, deterministic_clock, job_queue) -> PostingOrchestrator:
    return PostingOrchestrator(
        session_factory,
        settings=engine_settings,
        clock=deterministic_clock,
        job_queue=job_queue,
    )
