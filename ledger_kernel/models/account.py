"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts and the mapping
    from semantic account purposes to concrete accounts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Account code is unique per company (uq_account_company_code).
    - One mapped account per (company, purpose) (uq_account_mapping_purpose).
    - The parent tree has no cycles (enforced by ChartOfAccountsService).
    - An account with children or journal lines cannot be deleted
      (enforced by ChartOfAccountsService and the before_flush listener).

Audit relevance:
    Account type drives the sign of every balance query; purpose mappings
    decide where every document posting lands.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import ScopedBase, UUIDString


class AccountType(str, Enum):
    """Financial statement classification."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


NORMAL_BALANCE_BY_TYPE: dict[AccountType, NormalBalance] = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.REVENUE: NormalBalance.CREDIT,
}


class AccountPurpose(str, Enum):
    """
    Semantic role an account plays in document postings.

    Every posting converter asks for accounts by purpose; a purpose that
    is not a member of this enum cannot be requested.
    """

    CASH = "CASH"
    AR = "AR"
    AP = "AP"
    INVENTORY = "INVENTORY"
    EXPENSE = "EXPENSE"
    FX_GAIN = "FX_GAIN"
    FX_LOSS = "FX_LOSS"
    REVENUE = "REVENUE"
    COGS = "COGS"
    TAX_PAYABLE = "TAX_PAYABLE"
    TAX_RECEIVABLE = "TAX_RECEIVABLE"
    FIXED_ASSET = "FIXED_ASSET"


class Account(ScopedBase):
    """
    Chart of accounts entry.

    Contract:
        One node of a company's account tree.  ``parent_id`` references
        another account of the same company or is None for a root.

    Non-goals:
        - Does not hold balances; balances are computed from posted lines.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_account_company_code"),
        Index("idx_account_parent", "parent_id"),
        Index("idx_account_type", "account_type"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    parent: Mapped["Account | None"] = relationship(
        remote_side="Account.id",
        foreign_keys=[parent_id],
    )

    def __repr__(self) -> str:
        return f"<Account {self.code} {self.name} ({self.account_type})>"

    @property
    def normal_balance(self) -> NormalBalance:
        return NORMAL_BALANCE_BY_TYPE[AccountType(self.account_type)]


class AccountMapping(ScopedBase):
    """Purpose -> account binding for one company."""

    __tablename__ = "account_mappings"

    __table_args__ = (
        UniqueConstraint("company_id", "purpose", name="uq_account_mapping_purpose"),
    )

    purpose: Mapped[AccountPurpose] = mapped_column(String(30), nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    account: Mapped[Account] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<AccountMapping {self.company_id}:{self.purpose} -> {self.account_id}>"
