"""
Stock engine tests.

Validates the movement rules and their order of precedence:
insufficient stock, unit cost required, invalid quantity, negative stock.
"""

from decimal import Decimal

import pytest

from ledger_engines.stock import (
    INBOUND_TYPES,
    OUTBOUND_TYPES,
    MovementType,
    evaluate_movement,
    signed_delta,
)
from ledger_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    NegativeStockPreventedError,
    UnitCostRequiredError,
)


class TestClassification:

    def test_types_partitioned(self):
        assert OUTBOUND_TYPES | INBOUND_TYPES == set(MovementType)
        assert not OUTBOUND_TYPES & INBOUND_TYPES

    @pytest.mark.parametrize("movement_type", sorted(OUTBOUND_TYPES))
    def test_outbound_types_negative(self, movement_type):
        assert signed_delta(movement_type, Decimal("3")) == Decimal("-3")

    @pytest.mark.parametrize("movement_type", sorted(INBOUND_TYPES))
    def test_inbound_types_positive(self, movement_type):
        assert signed_delta(movement_type, Decimal("3")) == Decimal("3")


class TestEvaluateMovement:

    def test_sale_reduces_stock(self):
        delta = evaluate_movement(MovementType.SALE, Decimal("4"), Decimal("10"))

        assert delta.delta == Decimal("-4")
        assert delta.before == Decimal("10")
        assert delta.after == Decimal("6")
        assert delta.is_outbound

    def test_outbound_exceeding_on_hand(self):
        with pytest.raises(InsufficientStockError) as exc_info:
            evaluate_movement(MovementType.SALE, Decimal("12"), Decimal("10"), product_id="p1")

        assert exc_info.value.shortfall == Decimal("2")

    def test_insufficient_stock_takes_precedence_over_unit_cost(self):
        with pytest.raises(InsufficientStockError):
            evaluate_movement(MovementType.OUTBOUND, Decimal("5"), Decimal("2"))

    @pytest.mark.parametrize("unit_cost", [None, Decimal("0"), Decimal("-1")])
    def test_costed_types_require_positive_unit_cost(self, unit_cost):
        with pytest.raises(UnitCostRequiredError):
            evaluate_movement(MovementType.INBOUND, Decimal("5"), Decimal("0"), unit_cost=unit_cost)

    def test_purchase_needs_no_unit_cost(self):
        delta = evaluate_movement(MovementType.PURCHASE, Decimal("5"), Decimal("0"))
        assert delta.after == Decimal("5")

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-2")])
    def test_non_positive_quantity_rejected(self, quantity):
        with pytest.raises(InvalidQuantityError):
            evaluate_movement(MovementType.PURCHASE, quantity, Decimal("10"))

    @pytest.mark.parametrize("movement_type", [MovementType.DAMAGE, MovementType.THEFT, MovementType.ADJUSTMENT_OUT])
    def test_sign_implied_types_accept_negative_input(self, movement_type):
        delta = evaluate_movement(movement_type, Decimal("-3"), Decimal("5"))
        assert delta.delta == Decimal("-3")
        assert delta.after == Decimal("2")

    def test_negative_stock_prevented(self):
        with pytest.raises(NegativeStockPreventedError):
            evaluate_movement(MovementType.RETURN_IN, Decimal("1"), Decimal("-5"))
