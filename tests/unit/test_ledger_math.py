"""
Unit tests for the weighted-average ledger arithmetic.

Verifies:
- Weighted average of cumulative totals
- Zero average when nothing was purchased
- Entry validation (quantity > 0, cost >= 0)
- Add / remove / replace / consume / restore on MaterialTotals
"""

from decimal import Decimal

import pytest

from costbook_kernel.domain.ledger_math import (
    MaterialTotals,
    validate_entry,
    weighted_average,
)
from costbook_kernel.exceptions import InvalidCostError, InvalidQuantityError


class TestWeightedAverage:

    def test_two_purchases(self):
        assert weighted_average(Decimal("120"), Decimal("20"), 2) == Decimal("6.00")

    def test_zero_quantity_yields_zero(self):
        assert weighted_average(Decimal("50"), Decimal("0"), 2) == Decimal("0.00")

    def test_negative_quantity_yields_zero(self):
        assert weighted_average(Decimal("50"), Decimal("-3"), 2) == Decimal("0.00")

    def test_rounds_half_up(self):
        # 10 / 3 = 3.333..., 20 / 3 = 6.666...
        assert weighted_average(Decimal("10"), Decimal("3"), 2) == Decimal("3.33")
        assert weighted_average(Decimal("20"), Decimal("3"), 2) == Decimal("6.67")

    def test_default_precision_is_nine_places(self):
        assert weighted_average(Decimal("1"), Decimal("3")) == Decimal("0.333333333")


class TestValidateEntry:

    def test_accepts_positive_quantity_and_zero_cost(self):
        validate_entry(Decimal("1"), Decimal("0"))

    @pytest.mark.parametrize("quantity", ["0", "-1"])
    def test_rejects_non_positive_quantity(self, quantity):
        with pytest.raises(InvalidQuantityError) as exc_info:
            validate_entry(Decimal(quantity), Decimal("5"))
        assert exc_info.value.field == "total_quantity"

    def test_rejects_negative_cost(self):
        with pytest.raises(InvalidCostError):
            validate_entry(Decimal("1"), Decimal("-0.01"))

    def test_returns_values_at_stored_scale(self):
        quantity, cost = validate_entry(Decimal("0.0000000015"), Decimal("2.1234567894"))
        assert quantity == Decimal("0.000000002")
        assert cost == Decimal("2.123456789")

    @pytest.mark.parametrize("quantity", ["NaN", "sNaN", "Infinity", "-Infinity", "4E-10", "1E+40"])
    def test_rejects_unstorable_quantity(self, quantity):
        with pytest.raises(InvalidQuantityError):
            validate_entry(Decimal(quantity), Decimal("5"))

    @pytest.mark.parametrize("cost", ["NaN", "Infinity", "-Infinity", "-0.0000000006", "1E+40"])
    def test_rejects_unstorable_cost(self, cost):
        with pytest.raises(InvalidCostError):
            validate_entry(Decimal("1"), Decimal(cost))


class TestMaterialTotals:

    def test_add_entries(self):
        totals = (
            MaterialTotals.zero()
            .add_entry(Decimal("10"), Decimal("50"))
            .add_entry(Decimal("10"), Decimal("70"))
        )
        assert totals == MaterialTotals(Decimal("20"), Decimal("120"), Decimal("20"))
        assert totals.average_cost(2) == Decimal("6.00")

    def test_remove_is_inverse_of_add(self):
        start = MaterialTotals(Decimal("7.5"), Decimal("31.2"), Decimal("4"))
        after = start.add_entry(Decimal("3"), Decimal("9.99")).remove_entry(
            Decimal("3"), Decimal("9.99")
        )
        assert after == start

    def test_replace_entry(self):
        start = MaterialTotals.zero().add_entry(Decimal("10"), Decimal("50"))
        replaced = start.replace_entry(
            Decimal("10"), Decimal("50"), Decimal("4"), Decimal("30")
        )
        assert replaced == MaterialTotals(Decimal("4"), Decimal("30"), Decimal("4"))

    def test_consume_touches_only_stock(self):
        start = MaterialTotals(Decimal("20"), Decimal("120"), Decimal("20"))
        consumed = start.consume(Decimal("5"))
        assert consumed.total_quantity == Decimal("20")
        assert consumed.total_cost == Decimal("120")
        assert consumed.current_stock == Decimal("15")
        assert consumed.average_cost(2) == start.average_cost(2)

    def test_consume_may_go_negative(self):
        start = MaterialTotals(Decimal("1"), Decimal("2"), Decimal("1"))
        assert start.consume(Decimal("3")).current_stock == Decimal("-2")

    def test_restore_undoes_consume(self):
        start = MaterialTotals(Decimal("20"), Decimal("120"), Decimal("20"))
        assert start.consume(Decimal("5")).restore(Decimal("5")) == start

    def test_totals_are_not_rounded(self):
        totals = MaterialTotals.zero().add_entry(Decimal("3"), Decimal("10.0000000001"))
        assert totals.total_cost == Decimal("10.0000000001")
