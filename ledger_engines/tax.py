"""
Tax engine -- per-line tax and document totals.

Pure functions, no I/O.  Rates are passed as percentages (``7.5`` means
7.5%) because that is how tax rates are stored.

Rules:
    - Every line is rounded to the cent before any summation.
    - Exclusive tax: ``tax = net × rate``; gross = net + tax.
    - Inclusive tax: ``tax = gross × rate / (1 + rate)``; net = gross - tax.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from ledger_kernel.db.types import round_money

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


class TaxTreatment(str, Enum):
    EXCLUSIVE = "exclusive"
    INCLUSIVE = "inclusive"


@dataclass(frozen=True)
class LineAmounts:
    """Rounded amounts for one document line."""

    net: Decimal
    tax: Decimal
    gross: Decimal
    rate_pct: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    tax_total: Decimal
    total: Decimal


def tax_exclusive(amount: Decimal, rate: Decimal) -> Decimal:
    """Tax on a tax-exclusive amount; ``rate`` is a fraction."""
    return round_money(amount * rate)


def tax_inclusive(amount: Decimal, rate: Decimal) -> Decimal:
    """Tax contained in a tax-inclusive amount; ``rate`` is a fraction."""
    if rate == _ZERO:
        return round_money(_ZERO)
    return round_money(amount * rate / (1 + rate))


def compute_line(
    quantity: Decimal,
    unit_price: Decimal,
    rate_pct: Decimal = _ZERO,
    treatment: TaxTreatment = TaxTreatment.EXCLUSIVE,
) -> LineAmounts:
    """
    Net, tax and gross for ``quantity × unit_price`` at ``rate_pct`` percent.

    Raises:
        ValueError: Negative rate.
    """
    if rate_pct < 0:
        raise ValueError(f"Tax rate cannot be negative: {rate_pct}")
    rate = rate_pct / _HUNDRED
    extended = round_money(quantity * unit_price)

    if TaxTreatment(treatment) == TaxTreatment.INCLUSIVE:
        tax = tax_inclusive(extended, rate)
        return LineAmounts(net=extended - tax, tax=tax, gross=extended, rate_pct=rate_pct)

    tax = tax_exclusive(extended, rate)
    return LineAmounts(net=extended, tax=tax, gross=extended + tax, rate_pct=rate_pct)


def summarize(lines: Iterable[LineAmounts], extra_charges: Decimal = _ZERO) -> DocumentTotals:
    """Document totals from already-rounded lines plus any extra charges."""
    subtotal = _ZERO
    tax_total = _ZERO
    for line in lines:
        subtotal += line.net
        tax_total += line.tax
    extra = round_money(extra_charges)
    return DocumentTotals(
        subtotal=round_money(subtotal),
        tax_total=round_money(tax_total),
        total=round_money(subtotal + tax_total + extra),
    )
