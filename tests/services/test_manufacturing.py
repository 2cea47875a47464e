"""
Tests for ManufacturingService -- builds and their reversal.

Verifies:
- Build consumes material stock only (totals and averages unchanged)
- total_cost_at_build and per-material lines are frozen at build time
- Reversal replays the stored lines, not the current recipe
- Validation before mutation; negative-stock policy
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from costbook_kernel.domain.dtos import RecipeLine, RecipeSpec
from costbook_kernel.domain.ledger_math import MaterialTotals
from costbook_kernel.domain.policy import NegativeStockPolicy, StockPolicy
from costbook_kernel.exceptions import (
    BuildIntegrityError,
    BuildNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    NoRecipeLinkedError,
    ProductNotFoundError,
)
from costbook_kernel.models.product import ProductBuild, ProductBuildLine
from costbook_kernel.services import ManufacturingService


@pytest.fixture
def flour(make_material, purchase):
    material = make_material("Flour")
    purchase(material, 10, 50)
    purchase(material, 10, 70)
    return material


@pytest.fixture
def bread(flour, make_recipe, make_product):
    return make_product(make_recipe([(flour, 5)], yield_quantity=1))


class TestBuild:

    def test_concrete_scenario(self, flour, bread, manufacturing, user_id, session):
        assert flour.avg_cost == Decimal("6.00")
        assert flour.current_stock == Decimal("20")

        build = manufacturing.build(user_id, bread.id, Decimal("1"))

        assert flour.current_stock == Decimal("15")
        assert flour.total_quantity == Decimal("20")
        assert flour.avg_cost == Decimal("6.00")
        assert bread.current_stock == Decimal("1")
        assert build.total_cost_at_build == Decimal("30.00")
        assert build.to_dto().cost_per_unit == Decimal("30")

        manufacturing.delete_build(user_id, build.id)

        assert flour.current_stock == Decimal("20")
        assert bread.current_stock == Decimal("0")
        assert session.get(ProductBuild, build.id) is None
        assert session.execute(select(ProductBuildLine)).first() is None

    def test_scales_by_yield(self, flour, make_recipe, make_product, manufacturing, user_id):
        rolls = make_product(make_recipe([(flour, 2)], yield_quantity=4), name="Rolls")

        build = manufacturing.build(user_id, rolls.id, Decimal("10"))

        assert [line.quantity_consumed for line in build.lines] == [Decimal("5.00")]
        assert flour.current_stock == Decimal("15")
        assert rolls.current_stock == Decimal("10")

    def test_records_line_snapshot(self, flour, bread, manufacturing, user_id, clock):
        build = manufacturing.build(user_id, bread.id, Decimal("2"), notes="morning")

        line = build.lines[0]
        assert line.material_id == flour.id
        assert line.quantity_consumed == Decimal("10.00")
        assert line.unit_cost_at_build == Decimal("6.00")
        assert line.line_cost == Decimal("60.00")
        assert build.built_at == clock.now()
        assert build.notes == "morning"

    def test_reversal_ignores_recipe_edits(
        self, flour, bread, make_material, manufacturing, recipes, user_id
    ):
        build = manufacturing.build(user_id, bread.id, Decimal("1"))
        sugar = make_material("Sugar")
        recipes.update(
            user_id,
            bread.recipe_id,
            RecipeSpec(
                name="Sweet bread",
                yield_quantity=Decimal("1"),
                lines=(RecipeLine(material_id=sugar.id, quantity=Decimal("9")),),
            ),
        )

        manufacturing.delete_build(user_id, build.id)

        assert flour.current_stock == Decimal("20")
        assert sugar.current_stock == Decimal("0")

    def test_cost_frozen_after_new_purchase(
        self, flour, bread, manufacturing, purchase, user_id
    ):
        build = manufacturing.build(user_id, bread.id, Decimal("1"))
        purchase(flour, 10, 300)
        assert build.total_cost_at_build == Decimal("30.00")

    @pytest.mark.parametrize("quantity", ["0", "-2", "NaN", "Infinity", "1E-10"])
    def test_rejects_unusable_quantity(self, bread, manufacturing, user_id, quantity):
        with pytest.raises(InvalidQuantityError):
            manufacturing.build(user_id, bread.id, Decimal(quantity))

    def test_stock_moves_through_material_totals(
        self, flour, make_recipe, make_product, manufacturing, user_id, monkeypatch
    ):
        calls = []
        consume, restore = MaterialTotals.consume, MaterialTotals.restore

        def spy(name, method):
            def record(totals, quantity):
                calls.append((name, quantity))
                return method(totals, quantity)

            return record

        monkeypatch.setattr(MaterialTotals, "consume", spy("consume", consume))
        monkeypatch.setattr(MaterialTotals, "restore", spy("restore", restore))
        product = make_product(make_recipe([(flour, 2), (flour, 3)]))

        build = manufacturing.build(user_id, product.id, Decimal("1"))
        manufacturing.delete_build(user_id, build.id)

        assert calls == [("consume", Decimal("5")), ("restore", Decimal("5"))]
        assert flour.current_stock == Decimal("20")
        assert flour.total_quantity == Decimal("20")

    def test_unknown_product(self, manufacturing, user_id, session):
        with pytest.raises(ProductNotFoundError):
            manufacturing.build(user_id, uuid4(), Decimal("1"))

    def test_product_without_recipe(self, make_product, manufacturing, user_id):
        product = make_product()
        with pytest.raises(NoRecipeLinkedError):
            manufacturing.build(user_id, product.id, Decimal("1"))

    def test_deleted_recipe(self, bread, recipes, manufacturing, user_id):
        recipes.delete(user_id, bread.recipe_id)
        with pytest.raises(NoRecipeLinkedError):
            manufacturing.build(user_id, bread.id, Decimal("1"))

    def test_negative_stock_allowed_by_default(
        self, flour, bread, manufacturing, user_id, captured_logs
    ):
        manufacturing.build(user_id, bread.id, Decimal("5"))

        assert flour.current_stock == Decimal("-5")
        assert any(r["message"] == "material_stock_negative" for r in captured_logs())

    def test_reject_policy(self, flour, bread, session, clock, user_id):
        strict = ManufacturingService(
            session,
            StockPolicy(negative_material_stock=NegativeStockPolicy.REJECT, cost_places=2),
            clock,
        )

        with pytest.raises(InsufficientStockError) as exc_info:
            strict.build(user_id, bread.id, Decimal("5"))

        assert exc_info.value.entity_type == "Material"
        assert flour.current_stock == Decimal("20")
        assert bread.current_stock == Decimal("0")


class TestDeleteBuild:

    def test_refused_when_product_stock_sold(
        self, flour, bread, manufacturing, user_id
    ):
        build = manufacturing.build(user_id, bread.id, Decimal("2"))
        bread.current_stock = Decimal("1")

        with pytest.raises(InsufficientStockError) as exc_info:
            manufacturing.delete_build(user_id, build.id)

        assert exc_info.value.entity_type == "Product"
        assert flour.current_stock == Decimal("10")

    def test_missing_material_is_an_integrity_error(
        self, flour, bread, manufacturing, user_id, session
    ):
        build = manufacturing.build(user_id, bread.id, Decimal("1"))
        session.execute(select(ProductBuildLine)).scalars().first().material_id = uuid4()
        session.flush()

        with pytest.raises(BuildIntegrityError):
            manufacturing.delete_build(user_id, build.id)

    def test_unknown_build(self, manufacturing, user_id, session):
        with pytest.raises(BuildNotFoundError):
            manufacturing.delete_build(user_id, uuid4())

    def test_logs_reversal(self, flour, bread, manufacturing, user_id, captured_logs):
        build = manufacturing.build(user_id, bread.id, Decimal("1"))
        manufacturing.delete_build(user_id, build.id)

        messages = [r["message"] for r in captured_logs()]
        assert messages.index("build_recorded") < messages.index("build_reversed")
