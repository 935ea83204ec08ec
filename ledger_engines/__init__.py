"""
Module: ledger_engines
Responsibility:
    Pure calculation engines used by the document modules: tax, landed
    cost allocation, stock-delta validation, three-way match tolerance and
    payment allocation planning.

Architecture position:
    Engines -- zero I/O.  May import ledger_kernel.db.types,
    ledger_kernel.exceptions and sibling engines.  MUST NOT import
    ledger_modules or ledger_services.

Invariants enforced:
    - Decimal-only arithmetic; floats are rejected by round_money.
    - Determinism: identical inputs always produce identical outputs.
"""

from ledger_engines.allocation import (
    ApplicationRequest,
    OpenDocument,
    PlannedApplication,
    plan_default_application,
    plan_explicit_applications,
)
from ledger_engines.landed_cost import (
    CostLine,
    LandedCostAllocation,
    LandedCostCharges,
    LineAllocation,
    allocate_landed_cost,
)
from ledger_engines.matching import (
    MatchTolerance,
    QuantityDiscrepancy,
    TotalsComparison,
    compare_totals,
    find_quantity_discrepancies,
)
from ledger_engines.stock import (
    INBOUND_TYPES,
    OUTBOUND_TYPES,
    MovementType,
    StockDelta,
    evaluate_movement,
)
from ledger_engines.tax import DocumentTotals, LineAmounts, TaxTreatment, compute_line, summarize

__all__ = [
    "ApplicationRequest",
    "OpenDocument",
    "PlannedApplication",
    "plan_default_application",
    "plan_explicit_applications",
    "CostLine",
    "LandedCostAllocation",
    "LandedCostCharges",
    "LineAllocation",
    "allocate_landed_cost",
    "MatchTolerance",
    "QuantityDiscrepancy",
    "TotalsComparison",
    "compare_totals",
    "find_quantity_discrepancies",
    "INBOUND_TYPES",
    "OUTBOUND_TYPES",
    "MovementType",
    "StockDelta",
    "evaluate_movement",
    "DocumentTotals",
    "LineAmounts",
    "TaxTreatment",
    "compute_line",
    "summarize",
]
