"""Database layer - engine, base classes, types, unit of work."""

from ledger_kernel.db.base import UUID, Base, ScopedBase, TrackedBase, UUIDString
from ledger_kernel.db.engine import create_tables, get_engine, get_session
from ledger_kernel.db.types import Money, Quantity, round_money, round_unit_cost
from ledger_kernel.db.unit_of_work import UnitOfWork

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "ScopedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
    "round_money",
    "round_unit_cost",
    "UnitOfWork",
]
