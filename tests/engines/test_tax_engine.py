"""
Tax engine tests.

Validates:
- Exclusive and inclusive treatment
- Per-line rounding before summation
- Document totals with extra charges
"""

from decimal import Decimal

import pytest

from ledger_engines.tax import TaxTreatment, compute_line, summarize


class TestComputeLine:

    def test_exclusive_tax_added_on_top(self):
        line = compute_line(Decimal("2"), Decimal("50.00"), Decimal("10"))

        assert line.net == Decimal("100.00")
        assert line.tax == Decimal("10.00")
        assert line.gross == Decimal("110.00")

    def test_inclusive_tax_extracted(self):
        line = compute_line(Decimal("1"), Decimal("110.00"), Decimal("10"), TaxTreatment.INCLUSIVE)

        assert line.gross == Decimal("110.00")
        assert line.tax == Decimal("10.00")
        assert line.net == Decimal("100.00")

    def test_zero_rate(self):
        line = compute_line(Decimal("3"), Decimal("4.00"))

        assert line.tax == Decimal("0.00")
        assert line.gross == line.net == Decimal("12.00")

    def test_zero_rate_inclusive(self):
        line = compute_line(Decimal("1"), Decimal("9.99"), Decimal("0"), TaxTreatment.INCLUSIVE)
        assert line.net == Decimal("9.99")

    def test_extended_amount_rounded_half_up(self):
        line = compute_line(Decimal("3"), Decimal("33.335"))
        assert line.net == Decimal("100.01")

    def test_fractional_rate_rounded(self):
        line = compute_line(Decimal("1"), Decimal("19.99"), Decimal("7.5"))

        assert line.tax == Decimal("1.50")
        assert line.gross == Decimal("21.49")

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            compute_line(Decimal("1"), Decimal("10"), Decimal("-5"))


class TestSummarize:

    def test_totals_sum_rounded_lines(self):
        lines = [
            compute_line(Decimal("1"), Decimal("10.00"), Decimal("7.5")),
            compute_line(Decimal("1"), Decimal("10.00"), Decimal("7.5")),
            compute_line(Decimal("1"), Decimal("10.00"), Decimal("7.5")),
        ]

        totals = summarize(lines)

        # 0.75 per line, summed after rounding.
        assert totals.subtotal == Decimal("30.00")
        assert totals.tax_total == Decimal("2.25")
        assert totals.total == Decimal("32.25")

    def test_extra_charges_added_to_total_only(self):
        totals = summarize([compute_line(Decimal("2"), Decimal("50"))], extra_charges=Decimal("25.00"))

        assert totals.subtotal == Decimal("100.00")
        assert totals.total == Decimal("125.00")

    def test_empty_document(self):
        totals = summarize([])
        assert totals.total == Decimal("0.00")
