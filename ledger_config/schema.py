"""
Configuration schema (``ledger_config.schema``).

Frozen dataclasses describing the resolved engine settings.  Parsing lives
in ``loader.py``; this module has no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class ToleranceDefaults:
    """Three-way match tolerance used when a company sets none."""

    pct: Decimal
    abs: Decimal


@dataclass(frozen=True)
class PeriodPolicy:
    min_justification_length: int


@dataclass(frozen=True)
class MoneyPolicy:
    decimal_places: int
    unit_cost_places: int


@dataclass(frozen=True)
class JobPolicy:
    """Background jobs and webhook events emitted after commit."""

    post_commit: tuple[str, ...]
    webhook_events: tuple[str, ...]


@dataclass(frozen=True)
class EngineSettings:
    """
    Fully resolved engine settings.

    ``checksum`` is the SHA-256 of the canonical settings payload and is
    logged with every load for correlation.
    """

    version: int
    tolerance: ToleranceDefaults
    periods: PeriodPolicy
    money: MoneyPolicy
    jobs: JobPolicy
    source: str = "defaults"
    checksum: str = field(default="", compare=False)
