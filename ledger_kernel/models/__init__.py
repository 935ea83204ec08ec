"""Kernel ORM models."""

from ledger_kernel.models.account import (
    Account,
    AccountMapping,
    AccountPurpose,
    AccountType,
    NormalBalance,
)
from ledger_kernel.models.accounting_period import AccountingPeriod, PeriodStatus
from ledger_kernel.models.audit_event import AuditAction, AuditEvent
from ledger_kernel.models.company_setting import CompanySetting
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine

__all__ = [
    "Account",
    "AccountMapping",
    "AccountPurpose",
    "AccountType",
    "NormalBalance",
    "AccountingPeriod",
    "PeriodStatus",
    "AuditAction",
    "AuditEvent",
    "CompanySetting",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
]
