"""
Matching engine -- three-way match tolerance and quantity comparison.

Pure functions comparing a purchase order, its receipts and a vendor bill.

Tolerance rule:
    diff = |po_total - bill_total|
    pct  = diff / po_total × 100   (0 when po_total is 0)
    within tolerance  <=>  diff <= tolerance_abs  OR  pct <= tolerance_pct

Both boundaries are inclusive.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import round_money

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

DISCREPANCY_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class MatchTolerance:
    pct: Decimal
    abs: Decimal

    def __post_init__(self) -> None:
        if self.pct < 0 or self.abs < 0:
            raise ValueError("Match tolerances cannot be negative")


@dataclass(frozen=True)
class TotalsComparison:
    po_total: Decimal
    bill_total: Decimal
    diff: Decimal
    pct_diff: Decimal
    tolerance: MatchTolerance
    within_tolerance: bool


class DiscrepancyKind(str, Enum):
    BILLED_EXCEEDS_ACCEPTED = "billed_exceeds_accepted"
    ACCEPTED_SHORT_OF_ORDERED = "accepted_short_of_ordered"
    BILLED_NOT_ORDERED = "billed_not_ordered"


@dataclass(frozen=True)
class QuantityDiscrepancy:
    """One line-level quantity mismatch, persisted with a schema version."""

    item_key: str
    kind: DiscrepancyKind
    ordered: Decimal
    accepted: Decimal
    billed: Decimal
    schema_version: int = DISCREPANCY_SCHEMA_VERSION

    def to_record(self) -> dict[str, Any]:
        record = asdict(self)
        record["kind"] = self.kind.value
        for key in ("ordered", "accepted", "billed"):
            record[key] = str(record[key])
        return record


@traced_engine(
    "three_way_match",
    "1.0",
    fingerprint_fields=("po_total", "bill_total", "tolerance"),
    summarize=lambda r: {"diff": r.diff, "within_tolerance": r.within_tolerance},
)
def compare_totals(
    *,
    po_total: Decimal,
    bill_total: Decimal,
    tolerance: MatchTolerance,
) -> TotalsComparison:
    diff = abs(po_total - bill_total)
    pct = (diff / po_total * _HUNDRED) if po_total != _ZERO else _ZERO
    within = diff <= tolerance.abs or pct <= tolerance.pct
    return TotalsComparison(
        po_total=po_total,
        bill_total=bill_total,
        diff=round_money(diff),
        pct_diff=round_money(pct, 4),
        tolerance=tolerance,
        within_tolerance=within,
    )


def find_quantity_discrepancies(
    ordered: Mapping[str, Decimal],
    accepted: Mapping[str, Decimal],
    billed: Mapping[str, Decimal],
    *,
    has_receipts: bool = True,
) -> tuple[QuantityDiscrepancy, ...]:
    """
    Compare quantities per item key (product id or description).

    Without receipts the accepted quantity is not checked against what was
    ordered or billed; only items billed but never ordered are reported.
    """
    found: list[QuantityDiscrepancy] = []
    for key in sorted(set(ordered) | set(billed)):
        qty_ordered = ordered.get(key, _ZERO)
        qty_accepted = accepted.get(key, _ZERO)
        qty_billed = billed.get(key, _ZERO)

        kind: DiscrepancyKind | None = None
        if key not in ordered and qty_billed > 0:
            kind = DiscrepancyKind.BILLED_NOT_ORDERED
        elif has_receipts and qty_billed > qty_accepted:
            kind = DiscrepancyKind.BILLED_EXCEEDS_ACCEPTED
        elif has_receipts and qty_accepted < qty_ordered:
            kind = DiscrepancyKind.ACCEPTED_SHORT_OF_ORDERED

        if kind is not None:
            found.append(
                QuantityDiscrepancy(
                    item_key=key,
                    kind=kind,
                    ordered=qty_ordered,
                    accepted=qty_accepted,
                    billed=qty_billed,
                )
            )
    return tuple(found)
