"""
Module: costbook_kernel.selectors.report
Responsibility: Report figures (numbers only, no formatting): inventory
    valuation, sales / gross-profit summary and manufacturing summary.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Cost of goods sold comes from the frozen cost_per_unit_at_sale
      snapshots, never from current recipe cost.
    - Manufacturing cost comes from the frozen total_cost_at_build.
    - Only Completed sales count towards revenue.
    - Inventory valuation is the one figure computed from live costs:
      material stock at the current average, product stock at the current
      per-unit recipe cost.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from costbook_kernel.db.types import COST_DECIMAL_PLACES, ZERO, round_cost
from costbook_kernel.domain.dtos import (
    InventoryValuation,
    ManufacturingSummary,
    SalesSummary,
)
from costbook_kernel.logging_config import get_logger
from costbook_kernel.models.material import Material
from costbook_kernel.models.product import Product, ProductBuild
from costbook_kernel.models.recipe import Recipe
from costbook_kernel.models.sale import Sale, SaleStatus
from costbook_kernel.selectors.base import BaseSelector
from costbook_kernel.selectors.recipe import RecipeSelector

logger = get_logger("selectors.report")


class ReportSelector(BaseSelector):

    def __init__(self, session, places: int = COST_DECIMAL_PLACES):
        super().__init__(session)
        self.places = places
        self.recipes = RecipeSelector(session, places)

    def inventory_valuation(self, user_id: UUID) -> InventoryValuation:
        materials = self.session.execute(
            select(Material).where(Material.user_id == user_id)
        ).scalars().all()

        materials_value = ZERO
        low_stock = 0
        for material in materials:
            if not material.inventoryable:
                continue
            materials_value += material.current_stock * material.avg_cost
            if material.current_stock <= material.minimum_threshold:
                low_stock += 1

        products = self.session.execute(
            select(Product).where(Product.user_id == user_id)
        ).scalars().all()
        recipe_ids = {p.recipe_id for p in products if p.recipe_id is not None}
        unit_costs: dict[UUID, Decimal] = {}
        if recipe_ids:
            recipes = self.session.execute(
                select(Recipe)
                .options(selectinload(Recipe.lines))
                .where(Recipe.user_id == user_id, Recipe.id.in_(recipe_ids))
            ).scalars()
            for recipe in recipes:
                cost = self.recipes.cost_of(user_id, recipe.to_dto())
                unit_costs[recipe.id] = cost.per_yield_unit

        products_value = ZERO
        for product in products:
            products_value += product.current_stock * unit_costs.get(
                product.recipe_id, ZERO
            )

        return InventoryValuation(
            materials_value=round_cost(materials_value, self.places),
            products_value=round_cost(products_value, self.places),
            low_stock_count=low_stock,
        )

    def sales_summary(self, user_id: UUID, start: date, end: date) -> SalesSummary:
        sales = self.session.execute(
            select(Sale)
            .options(selectinload(Sale.items))
            .where(
                Sale.user_id == user_id,
                Sale.status == SaleStatus.COMPLETED,
                Sale.sale_date >= start,
                Sale.sale_date <= end,
            )
        ).scalars().all()

        revenue = ZERO
        cogs = ZERO
        per_product: dict[UUID | None, tuple[Decimal, Decimal]] = {}
        for sale in sales:
            revenue += sale.total_amount
            for item in sale.items:
                cogs += item.quantity * item.cost_per_unit_at_sale
                units, amount = per_product.get(item.product_id, (ZERO, ZERO))
                per_product[item.product_id] = (
                    units + item.quantity,
                    amount + item.subtotal,
                )

        by_product = tuple(
            (pid, units, amount)
            for pid, (units, amount) in sorted(
                per_product.items(), key=lambda kv: str(kv[0])
            )
        )
        return SalesSummary(
            start=start,
            end=end,
            sale_count=len(sales),
            revenue=revenue,
            cost_of_goods=round_cost(cogs, self.places),
            by_product=by_product,
        )

    def manufacturing_summary(
        self, user_id: UUID, start: date, end: date
    ) -> ManufacturingSummary:
        # UTC calendar days [start, end + 1 day)
        since = datetime.combine(start, time.min, tzinfo=timezone.utc)
        until = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
        builds = self.session.execute(
            select(ProductBuild).where(
                ProductBuild.user_id == user_id,
                ProductBuild.built_at >= since,
                ProductBuild.built_at < until,
            )
        ).scalars()

        batch_count = 0
        units = ZERO
        total_cost = ZERO
        for build in builds:
            batch_count += 1
            units += build.quantity_built
            total_cost += build.total_cost_at_build

        logger.debug(
            "manufacturing_summary_computed",
            extra={"batch_count": batch_count, "start": str(start), "end": str(end)},
        )
        return ManufacturingSummary(
            start=start,
            end=end,
            batch_count=batch_count,
            units_built=units,
            total_cost=total_cost,
        )
