"""
Landed cost allocation engine tests.

Validates:
- Proportional shares by line total
- Residual cent assigned to the largest line
- Per-unit increments at unit-cost precision
- Empty allocation when nothing is eligible
"""

from decimal import Decimal

import pytest

from ledger_engines.landed_cost import CostLine, LandedCostCharges, allocate_landed_cost


def _line(line_id, quantity, total):
    return CostLine(line_id=line_id, product_id=f"p-{line_id}", quantity=Decimal(quantity), line_total=Decimal(total))


class TestCharges:

    def test_total(self):
        charges = LandedCostCharges(Decimal("10.10"), Decimal("5.05"), Decimal("0.10"))
        assert charges.total == Decimal("15.25")

    def test_negative_charge_rejected(self):
        with pytest.raises(ValueError):
            LandedCostCharges(freight=Decimal("-1"))


class TestAllocation:

    def test_proportional_shares(self):
        result = allocate_landed_cost(
            lines=[_line(1, "10", "600"), _line(2, "4", "400")],
            charges=LandedCostCharges(freight=Decimal("80"), customs=Decimal("20")),
        )

        shares = {a.line_id: a.share for a in result.allocations}
        increments = {a.line_id: a.per_unit_increment for a in result.allocations}
        assert shares == {1: Decimal("60.00"), 2: Decimal("40.00")}
        assert increments == {1: Decimal("6.0000"), 2: Decimal("10.0000")}
        assert result.allocated_total == result.landed_total == Decimal("100.00")

    def test_residual_cent_goes_to_largest_line(self):
        result = allocate_landed_cost(
            lines=[_line(1, "1", "100"), _line(2, "1", "200"), _line(3, "1", "100")],
            charges=LandedCostCharges(other=Decimal("100")),
        )

        shares = {a.line_id: a.share for a in result.allocations}
        assert shares == {1: Decimal("25.00"), 2: Decimal("50.00"), 3: Decimal("25.00")}

        uneven = allocate_landed_cost(
            lines=[_line(1, "1", "100"), _line(2, "1", "101"), _line(3, "1", "100")],
            charges=LandedCostCharges(other=Decimal("1.00")),
        )
        shares = {a.line_id: a.share for a in uneven.allocations}
        assert sum(shares.values()) == Decimal("1.00")
        assert shares[2] == max(shares.values())

    def test_per_unit_increment_rounded_to_four_places(self):
        result = allocate_landed_cost(
            lines=[_line(1, "3", "90")],
            charges=LandedCostCharges(freight=Decimal("10")),
        )
        assert result.allocations[0].per_unit_increment == Decimal("3.3333")

    def test_ineligible_lines_take_no_share(self):
        result = allocate_landed_cost(
            lines=[_line(1, "0", "100"), _line(2, "5", "0"), _line(3, "2", "50")],
            charges=LandedCostCharges(freight=Decimal("10")),
        )
        assert [a.line_id for a in result.allocations] == [3]
        assert result.allocations[0].share == Decimal("10.00")

    def test_no_eligible_lines_is_empty(self):
        result = allocate_landed_cost(lines=[], charges=LandedCostCharges(freight=Decimal("10")))

        assert result.is_empty
        assert result.landed_total == Decimal("10.00")

    def test_zero_charges_is_empty(self):
        result = allocate_landed_cost(lines=[_line(1, "1", "10")], charges=LandedCostCharges())
        assert result.is_empty
