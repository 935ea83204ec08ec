"""
ChartOfAccountsService -- hierarchical account tree and balance queries.

Responsibility:
    Creates, re-parents, deactivates and deletes accounts, and computes
    balances from POSTED journal lines only.

Invariants enforced:
    - Account code unique per company.
    - Parent belongs to the same company; the tree never contains a cycle.
    - An account with child accounts or journal lines cannot be deleted.
    - Deactivating or deleting an account drops its company's entries from
      the shared AccountMappingCache, so posting never resolves to it.

Balance sign:
    Debit-normal accounts (asset, expense) report debits - credits;
    credit-normal accounts report credits - debits.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import round_money
from ledger_kernel.exceptions import (
    AccountCycleError,
    AccountHasChildrenError,
    AccountNotFoundError,
    AccountReferencedError,
    DuplicateAccountCodeError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.services.account_resolver import AccountMappingCache
from ledger_kernel.services.base import BaseService

logger = get_logger("services.chart_of_accounts")


@dataclass(frozen=True)
class AccountBalance:
    account_id: UUID
    code: str
    name: str
    account_type: AccountType
    total_debits: Decimal
    total_credits: Decimal
    balance: Decimal


@dataclass(frozen=True)
class TrialBalance:
    company_id: str
    as_of: date | None
    rows: tuple[AccountBalance, ...]

    @property
    def total_debits(self) -> Decimal:
        return sum((r.total_debits for r in self.rows), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((r.total_credits for r in self.rows), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


class ChartOfAccountsService(BaseService):
    """
    Manages one tenant's account trees.

    Non-goals:
        - Does NOT resolve purposes (AccountResolver does).
    """

    def __init__(self, session: Session, account_cache: AccountMappingCache | None = None):
        super().__init__(session)
        self._account_cache = account_cache

    def _forget_cached_mappings(self, account: Account) -> None:
        if self._account_cache is not None:
            self._account_cache.invalidate(account.tenant_id, account.company_id)

    def get(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def get_by_code(self, tenant_id: str, company_id: str, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.company_id == company_id,
                Account.code == code,
            )
        ).scalar_one_or_none()

    def create_account(
        self,
        *,
        tenant_id: str,
        company_id: str,
        code: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        parent_id: UUID | None = None,
    ) -> Account:
        """
        Create an account.

        Raises:
            DuplicateAccountCodeError: Code already used in the company.
            AccountNotFoundError: Parent missing or in another company.
        """
        if self.get_by_code(tenant_id, company_id, code) is not None:
            raise DuplicateAccountCodeError(company_id, code)
        if parent_id is not None:
            self._require_same_company(parent_id, tenant_id, company_id)

        account = Account(
            tenant_id=tenant_id,
            company_id=company_id,
            code=code,
            name=name,
            account_type=AccountType(account_type),
            parent_id=parent_id,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_created",
            extra={"company_id": company_id, "account_code": code, "account_type": account.account_type},
        )
        return account

    def _require_same_company(self, account_id: UUID, tenant_id: str, company_id: str) -> Account:
        account = self.session.get(Account, account_id)
        if account is None or account.tenant_id != tenant_id or account.company_id != company_id:
            raise AccountNotFoundError(str(account_id))
        return account

    def set_parent(self, account_id: UUID, parent_id: UUID | None, actor_id: UUID) -> Account:
        """
        Move an account under a new parent (or to the root).

        Raises:
            AccountCycleError: The new parent is the account or a descendant.
        """
        account = self.get(account_id)
        if parent_id is not None:
            self._require_same_company(parent_id, account.tenant_id, account.company_id)
            cursor: UUID | None = parent_id
            while cursor is not None:
                if cursor == account_id:
                    raise AccountCycleError(str(account_id), str(parent_id))
                cursor = self.session.execute(
                    select(Account.parent_id).where(Account.id == cursor)
                ).scalar_one_or_none()

        account.parent_id = parent_id
        account.updated_by_id = actor_id
        self.session.flush()
        return account

    def deactivate(self, account_id: UUID, actor_id: UUID) -> Account:
        account = self.get(account_id)
        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()
        self._forget_cached_mappings(account)
        logger.info("account_deactivated", extra={"account_code": account.code})
        return account

    def children(self, account_id: UUID) -> list[Account]:
        return list(
            self.session.execute(
                select(Account).where(Account.parent_id == account_id).order_by(Account.code)
            ).scalars()
        )

    def delete_account(self, account_id: UUID) -> None:
        """
        Delete an unused leaf account.

        Raises:
            AccountHasChildrenError: Account has child accounts.
            AccountReferencedError: Account has journal lines.
        """
        account = self.get(account_id)
        child_count = self.session.execute(
            select(func.count()).select_from(Account).where(Account.parent_id == account_id)
        ).scalar_one()
        if child_count:
            raise AccountHasChildrenError(str(account_id), child_count)

        line_count = self.session.execute(
            select(func.count()).select_from(JournalLine).where(JournalLine.account_id == account_id)
        ).scalar_one()
        if line_count:
            raise AccountReferencedError(str(account_id), line_count)

        self._forget_cached_mappings(account)
        self.session.delete(account)
        self.session.flush()
        logger.info("account_deleted", extra={"account_code": account.code})

    def _posted_totals(self, company_id: str, as_of: date | None):
        stmt = (
            select(
                JournalLine.account_id,
                func.coalesce(func.sum(JournalLine.debit), 0),
                func.coalesce(func.sum(JournalLine.credit), 0),
            )
            .join(JournalEntry, JournalEntry.id == JournalLine.journal_entry_id)
            .where(
                JournalEntry.company_id == company_id,
                JournalEntry.status == JournalEntryStatus.POSTED,
            )
            .group_by(JournalLine.account_id)
        )
        if as_of is not None:
            stmt = stmt.where(JournalEntry.entry_date <= as_of)
        return {
            account_id: (round_money(Decimal(str(dr))), round_money(Decimal(str(cr))))
            for account_id, dr, cr in self.session.execute(stmt)
        }

    @staticmethod
    def _to_balance(account: Account, debits: Decimal, credits: Decimal) -> AccountBalance:
        if account.normal_balance == NormalBalance.DEBIT:
            balance = debits - credits
        else:
            balance = credits - debits
        return AccountBalance(
            account_id=account.id,
            code=account.code,
            name=account.name,
            account_type=AccountType(account.account_type),
            total_debits=debits,
            total_credits=credits,
            balance=balance,
        )

    def get_balance(self, account_id: UUID, as_of: date | None = None) -> AccountBalance:
        """Posted balance of one account, signed by its normal balance."""
        account = self.get(account_id)
        totals = self._posted_totals(account.company_id, as_of)
        debits, credits = totals.get(account.id, (Decimal("0.00"), Decimal("0.00")))
        return self._to_balance(account, debits, credits)

    def trial_balance(self, tenant_id: str, company_id: str, as_of: date | None = None) -> TrialBalance:
        """Every account with posted activity, ordered by code."""
        totals = self._posted_totals(company_id, as_of)
        accounts = self.session.execute(
            select(Account)
            .where(Account.tenant_id == tenant_id, Account.company_id == company_id)
            .order_by(Account.code)
        ).scalars()
        rows = tuple(
            self._to_balance(account, *totals[account.id])
            for account in accounts
            if account.id in totals
        )
        return TrialBalance(company_id=company_id, as_of=as_of, rows=rows)
