"""
Shared test data builders.

Constants, the standard chart of accounts and small document builders
used by conftest.py and by test modules that need them outside a fixture.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.models.account import AccountPurpose, AccountType
from ledger_kernel.models.journal import JournalLine
from ledger_kernel.services.account_resolver import AccountResolver
from ledger_kernel.services.chart_of_accounts import ChartOfAccountsService
from ledger_modules._posting_helpers import DocumentLineInput
from ledger_modules.procurement.models import PurchaseOrderLineInput

TEST_ACTOR_ID = UUID("00000000-0000-4000-8000-000000000001")
TENANT_ID = "tenant-1"
COMPANY_ID = "company-1"

# code, name, type, purpose
STANDARD_CHART = (
    ("1000", "Cash", AccountType.ASSET, AccountPurpose.CASH),
    ("1200", "Accounts Receivable", AccountType.ASSET, AccountPurpose.AR),
    ("1300", "Inventory", AccountType.ASSET, AccountPurpose.INVENTORY),
    ("1400", "Tax Receivable", AccountType.ASSET, AccountPurpose.TAX_RECEIVABLE),
    ("1500", "Fixed Assets", AccountType.ASSET, AccountPurpose.FIXED_ASSET),
    ("2000", "Accounts Payable", AccountType.LIABILITY, AccountPurpose.AP),
    ("2100", "Tax Payable", AccountType.LIABILITY, AccountPurpose.TAX_PAYABLE),
    ("4000", "Revenue", AccountType.REVENUE, AccountPurpose.REVENUE),
    ("4900", "FX Gain", AccountType.REVENUE, AccountPurpose.FX_GAIN),
    ("5000", "Cost of Goods Sold", AccountType.EXPENSE, AccountPurpose.COGS),
    ("6000", "Operating Expense", AccountType.EXPENSE, AccountPurpose.EXPENSE),
    ("6900", "FX Loss", AccountType.EXPENSE, AccountPurpose.FX_LOSS),
)


def seed_chart_of_accounts(
    session: Session,
    tenant_id: str = TENANT_ID,
    company_id: str = COMPANY_ID,
    actor_id: UUID = TEST_ACTOR_ID,
    skip: tuple[AccountPurpose, ...] = (),
) -> dict[AccountPurpose, UUID]:
    """Create the standard accounts and map every purpose not in ``skip``."""
    chart = ChartOfAccountsService(session)
    resolver = AccountResolver(session)
    accounts: dict[AccountPurpose, UUID] = {}
    for code, name, account_type, purpose in STANDARD_CHART:
        account = chart.create_account(
            tenant_id=tenant_id,
            company_id=company_id,
            code=code,
            name=name,
            account_type=account_type,
            actor_id=actor_id,
        )
        if purpose not in skip:
            resolver.map_purpose(tenant_id, company_id, purpose, account.id, actor_id)
        accounts[purpose] = account.id
    return accounts


def doc_line(description: str, quantity: str, unit_price: str, **kwargs) -> DocumentLineInput:
    return DocumentLineInput(
        description=description,
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        **kwargs,
    )


def po_line(description: str, quantity: str, unit_price: str, product_id: UUID | None = None) -> PurchaseOrderLineInput:
    return PurchaseOrderLineInput(
        description=description,
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        product_id=product_id,
    )


def lines_by_account(session: Session, entry_id: UUID) -> dict[UUID, tuple[Decimal, Decimal]]:
    """(debits, credits) per account for one journal entry."""
    totals: dict[UUID, list[Decimal]] = defaultdict(lambda: [Decimal("0"), Decimal("0")])
    rows = session.execute(
        select(JournalLine).where(JournalLine.journal_entry_id == entry_id)
    ).scalars()
    for line in rows:
        totals[line.account_id][0] += line.debit
        totals[line.account_id][1] += line.credit
    return {account_id: (dr, cr) for account_id, (dr, cr) in totals.items()}
