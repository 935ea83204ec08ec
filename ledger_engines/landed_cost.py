"""
Landed cost engine -- proportional allocation of import costs.

Distributes ``freight + customs + other`` across inventory-bearing bill
lines in proportion to each line's total, and converts each share into a
per-unit cost increment.

Rounding:
    Shares are computed at full precision.  The per-unit increment is the
    one value rounded (to ``unit_cost_places``).  Reported shares are
    rounded to the cent with the residual cent(s) assigned to the largest
    line, so the reported shares always sum to the landed total.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import UNIT_COST_PLACES, round_money

_ZERO = Decimal("0")


@dataclass(frozen=True)
class LandedCostCharges:
    freight: Decimal = _ZERO
    customs: Decimal = _ZERO
    other: Decimal = _ZERO

    def __post_init__(self) -> None:
        for name in ("freight", "customs", "other"):
            if getattr(self, name) < 0:
                raise ValueError(f"Landed cost {name} cannot be negative")

    @property
    def total(self) -> Decimal:
        return round_money(self.freight + self.customs + self.other)

    def __str__(self) -> str:
        return f"{self.freight}/{self.customs}/{self.other}"


@dataclass(frozen=True)
class CostLine:
    """An inventory-bearing bill line eligible for allocation."""

    line_id: Any
    product_id: Any
    quantity: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class LineAllocation:
    line_id: Any
    product_id: Any
    quantity: Decimal
    share: Decimal
    per_unit_increment: Decimal


@dataclass(frozen=True)
class LandedCostAllocation:
    landed_total: Decimal
    allocations: tuple[LineAllocation, ...]

    @property
    def allocated_total(self) -> Decimal:
        return sum((a.share for a in self.allocations), _ZERO)

    @property
    def is_empty(self) -> bool:
        return not self.allocations


@traced_engine(
    "landed_cost",
    "1.0",
    fingerprint_fields=("lines", "charges"),
    summarize=lambda r: {"landed_total": r.landed_total, "allocated_lines": len(r.allocations)},
)
def allocate_landed_cost(
    *,
    lines: Sequence[CostLine],
    charges: LandedCostCharges,
    unit_cost_places: int = UNIT_COST_PLACES,
) -> LandedCostAllocation:
    """
    Allocate ``charges`` across ``lines``.

    Lines with a non-positive quantity or total do not take a share.  With
    no eligible lines or a zero landed total the allocation is empty and the
    caller expenses the landed costs instead.
    """
    landed_total = charges.total
    eligible = [line for line in lines if line.quantity > 0 and line.line_total > 0]
    basis = sum((line.line_total for line in eligible), _ZERO)

    if not eligible or basis <= 0 or landed_total <= 0:
        return LandedCostAllocation(landed_total=landed_total, allocations=())

    raw_shares = [landed_total * line.line_total / basis for line in eligible]
    rounded = [round_money(share) for share in raw_shares]
    residual = landed_total - sum(rounded, _ZERO)
    if residual:
        largest = max(range(len(eligible)), key=lambda i: eligible[i].line_total)
        rounded[largest] += residual

    allocations = tuple(
        LineAllocation(
            line_id=line.line_id,
            product_id=line.product_id,
            quantity=line.quantity,
            share=share,
            per_unit_increment=round_money(raw / line.quantity, unit_cost_places),
        )
        for line, raw, share in zip(eligible, raw_shares, rounded)
    )
    return LandedCostAllocation(landed_total=landed_total, allocations=allocations)
