"""
Tests for the read side: selectors and report figures.

Verifies:
- Live recipe cost follows the current material averages
- Inventory valuation at current costs
- Sales summary from frozen cost snapshots, Completed sales only
- Manufacturing summary from frozen build costs, by build date
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from costbook_kernel.domain.dtos import SaleHeader, SaleLine
from costbook_kernel.selectors import (
    MaterialSelector,
    ProductSelector,
    RecipeSelector,
    ReportSelector,
    SaleSelector,
)

JAN_1 = date(2024, 1, 1)
JAN_31 = date(2024, 1, 31)


@pytest.fixture
def flour(make_material, purchase):
    material = make_material("Flour", minimum_threshold=Decimal("1"))
    purchase(material, 10, 50)
    purchase(material, 10, 70)
    return material


@pytest.fixture
def bread(flour, make_recipe, make_product, manufacturing, user_id):
    product = make_product(make_recipe([(flour, 1)], yield_quantity=2), price="10")
    manufacturing.build(user_id, product.id, Decimal("4"))
    return product


@pytest.fixture
def report(session):
    return ReportSelector(session, places=2)


class TestRecipeSelector:

    def test_cost_follows_average(self, flour, bread, purchase, session, user_id):
        selector = RecipeSelector(session, places=2)
        assert selector.cost(user_id, bread.recipe_id).per_yield_unit == Decimal("3.00")

        purchase(flour, 10, 300)

        assert selector.cost(user_id, bread.recipe_id).per_yield_unit == Decimal("7.00")

    def test_cost_flags_deleted_material(
        self, make_material, make_recipe, materials, session, user_id
    ):
        salt = make_material("Salt")
        recipe = make_recipe([(salt, 1)])
        materials.delete(user_id, salt.id)

        cost = RecipeSelector(session, places=2).cost(user_id, recipe.id)

        assert cost.missing_material_ids == (salt.id,)
        assert cost.total == Decimal("0.00")


class TestListings:

    def test_material_entries_newest_first(self, flour, purchase, session, user_id):
        purchase(flour, 1, 1, purchase_date=date(2024, 5, 1))
        entries = MaterialSelector(session).entries(user_id, flour.id)
        assert entries[0].purchase_date == date(2024, 5, 1)
        assert len(entries) == 3

    def test_low_stock(self, make_material, flour, session, user_id):
        make_material("Yeast", minimum_threshold=Decimal("2"))
        make_material("Boxes", minimum_threshold=Decimal("2"), inventoryable=False)
        names = [m.name for m in MaterialSelector(session).low_stock(user_id)]
        assert names == ["Yeast"]

    def test_low_stock_compares_numerically(self, make_material, purchase, session, user_id):
        plenty = make_material("Honey", minimum_threshold=Decimal("9"))
        purchase(plenty, 10, 10)
        short = make_material("Oats", minimum_threshold=Decimal("10"))
        purchase(short, "9.5", 10)
        session.flush()
        session.expire_all()

        names = [m.name for m in MaterialSelector(session).low_stock(user_id)]
        assert names == ["Oats"]

    def test_builds_history(self, bread, session, user_id):
        builds = ProductSelector(session).builds(user_id, bread.id)
        assert len(builds) == 1
        assert builds[0].quantity_built == Decimal("4")
        assert builds[0].lines[0].quantity_consumed == Decimal("2")

    def test_list_sales_by_status(self, bread, sales, session, user_id):
        sales.create_draft(user_id, SaleHeader(), [SaleLine(quantity=Decimal("1"), product_id=bread.id)])
        sales.create_and_complete(
            user_id, SaleHeader(), [SaleLine(quantity=Decimal("1"), product_id=bread.id)]
        )
        selector = SaleSelector(session)
        assert len(selector.list_sales(user_id)) == 2
        assert [s.status for s in selector.list_sales(user_id, "Completed")] == ["Completed"]

    def test_other_users_see_nothing(self, bread, session, other_user_id):
        assert ProductSelector(session).list_products(other_user_id) == []
        assert MaterialSelector(session).list_materials(other_user_id) == []


class TestInventoryValuation:

    def test_values_at_current_cost(self, flour, bread, report, user_id):
        valuation = report.inventory_valuation(user_id)

        # flour: 18 left at 6.00; bread: 4 at 3.00 per unit
        assert valuation.materials_value == Decimal("108.00")
        assert valuation.products_value == Decimal("12.00")
        assert valuation.total_value == Decimal("120.00")
        assert valuation.low_stock_count == 0

    def test_counts_low_stock(self, make_material, report, user_id):
        make_material("Yeast", minimum_threshold=Decimal("2"))
        assert report.inventory_valuation(user_id).low_stock_count == 1


class TestSalesSummary:

    def test_completed_sales_only(self, bread, sales, report, clock, user_id):
        line = SaleLine(quantity=Decimal("2"), product_id=bread.id)
        sales.create_and_complete(user_id, SaleHeader(), [line])
        sales.create_draft(user_id, SaleHeader(), [line])
        sales.create_and_complete(
            user_id, SaleHeader(sale_date=date(2024, 2, 15)), [SaleLine(quantity=Decimal("1"), product_id=bread.id)]
        )

        summary = report.sales_summary(user_id, JAN_1, JAN_31)

        assert summary.sale_count == 1
        assert summary.revenue == Decimal("20")
        assert summary.cost_of_goods == Decimal("6.00")
        assert summary.gross_profit == Decimal("14.00")
        assert summary.gross_margin == Decimal("0.7")
        assert summary.by_product == ((bread.id, Decimal("2"), Decimal("20")),)

    def test_uses_frozen_cost(self, flour, bread, sales, purchase, report, user_id):
        sales.create_and_complete(
            user_id, SaleHeader(), [SaleLine(quantity=Decimal("1"), product_id=bread.id)]
        )
        purchase(flour, 10, 300)

        summary = report.sales_summary(user_id, JAN_1, JAN_31)

        assert summary.cost_of_goods == Decimal("3.00")

    def test_empty_period(self, report, user_id, session):
        summary = report.sales_summary(user_id, JAN_1, JAN_31)
        assert summary.sale_count == 0
        assert summary.gross_margin == Decimal("0")


class TestManufacturingSummary:

    def test_filters_by_build_date(self, bread, manufacturing, report, clock, user_id):
        clock.advance(days=40)
        manufacturing.build(user_id, bread.id, Decimal("2"))

        january = report.manufacturing_summary(user_id, JAN_1, JAN_31)
        february = report.manufacturing_summary(user_id, date(2024, 2, 1), date(2024, 2, 29))

        assert (january.batch_count, january.units_built) == (1, Decimal("4"))
        assert january.total_cost == Decimal("12.00")
        assert (february.batch_count, february.units_built) == (1, Decimal("2"))

    def test_period_is_whole_utc_days(self, bread, manufacturing, report, clock, user_id):
        clock.set_time(datetime(2024, 1, 31, 23, 59, 59, tzinfo=timezone.utc))
        manufacturing.build(user_id, bread.id, Decimal("1"))
        clock.set_time(datetime(2024, 2, 1, 0, 0, 0, tzinfo=timezone.utc))
        manufacturing.build(user_id, bread.id, Decimal("3"))
        # 00:30 at UTC+2 is still January 31st in UTC
        clock.set_time(datetime(2024, 2, 1, 0, 30, tzinfo=timezone(timedelta(hours=2))))
        manufacturing.build(user_id, bread.id, Decimal("2"))

        january = report.manufacturing_summary(user_id, JAN_1, JAN_31)
        february = report.manufacturing_summary(user_id, date(2024, 2, 1), date(2024, 2, 1))

        assert (january.batch_count, january.units_built) == (3, Decimal("7"))
        assert (february.batch_count, february.units_built) == (1, Decimal("3"))
