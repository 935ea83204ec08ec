"""
Declarative bases shared by every ledger table.

    Base          uuid4 primary key plus the type annotation map
    TrackedBase   created/updated timestamps and actor ids
    ScopedBase    TrackedBase + tenant_id / company_id

Amount columns annotated ``Mapped[Decimal]`` become ``Numeric(38, 9)``;
amounts are never stored as floats.  Tenant and company identifiers are
opaque strings supplied by the caller's context resolver.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID persisted as its 36-character text form (portable across PostgreSQL and SQLite)."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


def _timestamp_column(**kwargs) -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False, **kwargs)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Row metadata: when and by whom a row was created or last touched.

    These columns are bookkeeping rather than financial data, so the
    immutability listeners ignore them on append-only tables.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = _timestamp_column()
    updated_at: Mapped[datetime] = _timestamp_column(onupdate=func.now())
    created_by_id: Mapped[PyUUID] = mapped_column()
    updated_by_id: Mapped[PyUUID | None] = mapped_column()


class ScopedBase(TrackedBase):
    __abstract__ = True

    tenant_id: Mapped[str] = mapped_column(String(64), index=True)
    company_id: Mapped[str] = mapped_column(String(64), index=True)


UUID = PyUUID
