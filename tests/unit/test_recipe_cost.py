"""
Unit tests for RecipeCostCalculator (pure, no database).

Verifies:
- Live total and per-yield-unit cost
- Missing materials flagged and costed at zero
- Zero yield gives a zero per-unit cost but still a total
- Build plans scale by quantity / yield and quantize consumption
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from costbook_kernel.domain.dtos import (
    MaterialSnapshot,
    RecipeLineSnapshot,
    RecipeSnapshot,
)
from costbook_kernel.domain.recipe_cost import RecipeCostCalculator
from costbook_kernel.exceptions import (
    InvalidQuantityError,
    InvalidYieldError,
    MaterialNotFoundError,
)


def _material(avg_cost, stock="100"):
    return MaterialSnapshot(
        id=uuid4(),
        name="m",
        purchase_unit="kg",
        crafting_unit="g",
        conversion_factor=Decimal("1"),
        total_quantity=Decimal(stock),
        total_cost=Decimal(stock) * Decimal(avg_cost),
        avg_cost=Decimal(avg_cost),
        current_stock=Decimal(stock),
        minimum_threshold=Decimal("0"),
    )


def _recipe(lines, yield_quantity="1"):
    return RecipeSnapshot(
        id=uuid4(),
        name="r",
        yield_quantity=Decimal(yield_quantity),
        lines=tuple(
            RecipeLineSnapshot(id=uuid4(), material_id=m.id, quantity=Decimal(q))
            for m, q in lines
        ),
    )


@pytest.fixture
def calc():
    return RecipeCostCalculator(places=2)


class TestRecipeCost:

    def test_total_and_per_unit(self, calc):
        flour = _material("6")
        sugar = _material("2.5")
        recipe = _recipe([(flour, "2"), (sugar, "4")], yield_quantity="4")

        cost = calc.cost(recipe, {flour.id: flour, sugar.id: sugar})

        assert cost.total == Decimal("22.00")
        assert cost.per_yield_unit == Decimal("5.50")
        assert cost.is_complete

    def test_missing_material_is_flagged(self, calc, captured_logs):
        flour = _material("6")
        ghost_id = uuid4()
        recipe = RecipeSnapshot(
            id=uuid4(),
            name="r",
            yield_quantity=Decimal("1"),
            lines=(
                RecipeLineSnapshot(id=uuid4(), material_id=flour.id, quantity=Decimal("1")),
                RecipeLineSnapshot(id=uuid4(), material_id=ghost_id, quantity=Decimal("3")),
            ),
        )

        cost = calc.cost(recipe, {flour.id: flour})

        assert cost.total == Decimal("6.00")
        assert cost.missing_material_ids == (ghost_id,)
        assert not cost.is_complete
        ghost_line = [line for line in cost.lines if line.missing][0]
        assert ghost_line.line_cost == Decimal("0")
        assert any(r["message"] == "recipe_material_missing" for r in captured_logs())

    def test_zero_yield_gives_zero_per_unit(self, calc):
        flour = _material("6")
        recipe = _recipe([(flour, "2")], yield_quantity="0")

        cost = calc.cost(recipe, {flour.id: flour})

        assert cost.total == Decimal("12.00")
        assert cost.per_yield_unit == Decimal("0.00")

    def test_empty_recipe_costs_nothing(self, calc):
        cost = calc.cost(_recipe([]), {})
        assert cost.total == Decimal("0.00")
        assert cost.lines == ()


class TestBuildPlan:

    def test_scales_by_quantity_over_yield(self, calc):
        flour = _material("6")
        recipe = _recipe([(flour, "2")], yield_quantity="4")

        plan = calc.plan_build(recipe, {flour.id: flour}, Decimal("10"))

        assert plan.lines[0].quantity == Decimal("5.00")
        assert plan.total_cost == Decimal("30.00")

    def test_consumption_is_quantized(self, calc):
        flour = _material("1")
        recipe = _recipe([(flour, "1")], yield_quantity="3")

        plan = calc.plan_build(recipe, {flour.id: flour}, Decimal("1"))

        assert plan.lines[0].quantity == Decimal("0.33")

    def test_consumption_by_material_merges_duplicate_lines(self, calc):
        flour = _material("1")
        recipe = _recipe([(flour, "1"), (flour, "2")])

        plan = calc.plan_build(recipe, {flour.id: flour}, Decimal("2"))

        assert plan.consumption_by_material() == {flour.id: Decimal("6.00")}

    @pytest.mark.parametrize("quantity", ["0", "-1"])
    def test_rejects_non_positive_quantity(self, calc, quantity):
        with pytest.raises(InvalidQuantityError):
            calc.plan_build(_recipe([]), {}, Decimal(quantity))

    def test_rejects_zero_yield(self, calc):
        with pytest.raises(InvalidYieldError):
            calc.plan_build(_recipe([], yield_quantity="0"), {}, Decimal("1"))

    def test_rejects_missing_material(self, calc):
        flour = _material("1")
        with pytest.raises(MaterialNotFoundError):
            calc.plan_build(_recipe([(flour, "1")]), {}, Decimal("1"))
