"""
ManufacturingService -- builds that turn material stock into product stock.

Responsibility:
    Build: scale the product's recipe to the requested quantity, consume
    material stock, add product stock and record the build with a frozen
    per-material consumption snapshot.  DeleteBuild: replay that snapshot
    in reverse.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only.

Invariants enforced:
    - All validation (quantity, recipe link, yield, material existence,
      negative-stock policy) happens before the first mutation.
    - Materials are locked in ascending id order, then the product.
    - Consumption touches current_stock only; totals and averages are
      untouched by builds and their reversal.
    - total_cost_at_build and the build lines are never recomputed.
      Reversal uses the stored lines, not the current recipe.

Failure modes:
    - InvalidQuantityError, ProductNotFoundError, NoRecipeLinkedError,
      InvalidYieldError, MaterialNotFoundError on build.
    - InsufficientStockError when the policy rejects negative material
      stock (build), or when the product no longer holds the built units
      (reversal).
    - BuildNotFoundError, BuildIntegrityError on reversal.
"""

from decimal import Decimal
from uuid import UUID

from costbook_kernel.db.types import to_decimal
from costbook_kernel.domain.ledger_math import require_quantity
from costbook_kernel.domain.recipe_cost import BuildPlan, RecipeCostCalculator
from costbook_kernel.exceptions import (
    BuildIntegrityError,
    BuildNotFoundError,
    InsufficientStockError,
    NoRecipeLinkedError,
    ProductNotFoundError,
)
from costbook_kernel.logging_config import get_logger
from costbook_kernel.models.product import Product, ProductBuild, ProductBuildLine
from costbook_kernel.models.recipe import Recipe
from costbook_kernel.services.base import BaseService
from costbook_kernel.services.purchase_journal import totals_of
from costbook_kernel.services.row_locks import lock_materials, lock_products

logger = get_logger("services.manufacturing")


class ManufacturingService(BaseService[ProductBuild]):

    def __init__(self, session, policy=None, clock=None):
        super().__init__(session, policy, clock)
        self.calculator = RecipeCostCalculator(self.policy.cost_places)

    def build(
        self,
        user_id: UUID,
        product_id: UUID,
        quantity: Decimal | int | str,
        notes: str | None = None,
    ) -> ProductBuild:
        quantity = require_quantity("quantity_to_build", to_decimal(quantity))

        product = self._get_owned(Product, user_id, product_id, ProductNotFoundError)
        recipe = self._linked_recipe(user_id, product)

        materials = lock_materials(
            self.session, user_id, [line.material_id for line in recipe.lines]
        )
        plan = self.calculator.plan_build(
            recipe.to_dto(),
            {mid: m.to_dto() for mid, m in materials.items()},
            quantity,
        )
        self._check_material_stock(plan, materials)

        for material_id, needed in plan.consumption_by_material().items():
            material = materials[material_id]
            material.current_stock = totals_of(material).consume(needed).current_stock

        product = lock_products(self.session, user_id, [product_id])[product_id]
        product.current_stock += quantity

        build = ProductBuild(
            user_id=user_id,
            product_id=product.id,
            recipe_id=recipe.id,
            quantity_built=quantity,
            total_cost_at_build=plan.total_cost,
            notes=notes,
            built_at=self.clock.now(),
        )
        build.lines = [
            ProductBuildLine(
                material_id=line.material_id,
                quantity_consumed=line.quantity,
                unit_cost_at_build=line.unit_cost,
                line_cost=line.line_cost,
                details=line.details,
                position=pos,
            )
            for pos, line in enumerate(plan.lines)
        ]
        self.session.add(build)
        self.session.flush()

        logger.info(
            "build_recorded",
            extra={
                "build_id": str(build.id),
                "product_id": str(product.id),
                "recipe_id": str(recipe.id),
                "quantity_built": quantity,
                "total_cost_at_build": plan.total_cost,
                "material_count": len(materials),
                "product_stock": product.current_stock,
            },
        )
        return build

    def delete_build(self, user_id: UUID, build_id: UUID) -> None:
        build = self._get_owned(
            ProductBuild, user_id, build_id, BuildNotFoundError, for_update=True
        )
        consumed: dict[UUID, Decimal] = {}
        for line in build.lines:
            consumed[line.material_id] = (
                consumed.get(line.material_id, Decimal("0")) + line.quantity_consumed
            )

        materials = lock_materials(self.session, user_id, consumed, required=False)
        missing = sorted(str(mid) for mid in consumed if mid not in materials)
        if missing:
            logger.error(
                "build_reversal_material_missing",
                extra={"build_id": str(build_id), "material_ids": missing},
            )
            raise BuildIntegrityError(
                str(build_id), f"consumed material(s) no longer exist: {', '.join(missing)}"
            )

        products = lock_products(
            self.session, user_id, [build.product_id], required=False
        )
        product = products.get(build.product_id)
        if product is None:
            raise BuildIntegrityError(str(build_id), "built product no longer exists")
        if product.current_stock < build.quantity_built:
            raise InsufficientStockError(
                "Product", str(product.id), build.quantity_built, product.current_stock
            )

        for material_id, quantity in consumed.items():
            material = materials[material_id]
            material.current_stock = totals_of(material).restore(quantity).current_stock
        product.current_stock -= build.quantity_built

        self.session.delete(build)
        self.session.flush()

        logger.info(
            "build_reversed",
            extra={
                "build_id": str(build_id),
                "product_id": str(product.id),
                "quantity_built": build.quantity_built,
                "material_count": len(materials),
                "product_stock": product.current_stock,
            },
        )

    def _linked_recipe(self, user_id: UUID, product: Product) -> Recipe:
        if product.recipe_id is None:
            raise NoRecipeLinkedError(str(product.id))
        recipe = self.session.get(Recipe, product.recipe_id)
        if recipe is None or recipe.user_id != user_id:
            raise NoRecipeLinkedError(str(product.id))
        return recipe

    def _check_material_stock(self, plan: BuildPlan, materials) -> None:
        for material_id, needed in plan.consumption_by_material().items():
            material = materials[material_id]
            if self.policy.would_violate(material.current_stock, needed):
                raise InsufficientStockError(
                    "Material", str(material_id), needed, material.current_stock
                )
            if material.current_stock < needed:
                logger.warning(
                    "material_stock_negative",
                    extra={
                        "material_id": str(material_id),
                        "needed": needed,
                        "available": material.current_stock,
                    },
                )
