"""
ProductService -- product lifecycle.

Stock is never written here; it moves only through ManufacturingService
and SalesService.  Deleting a product is refused while builds or sale
items still reference it, so build reversal and sale reversion always find
their product.
"""

from uuid import UUID

from sqlalchemy import func, select

from costbook_kernel.db.types import ZERO, round_cost
from costbook_kernel.domain.dtos import ProductSpec
from costbook_kernel.domain.ledger_math import require_cost
from costbook_kernel.exceptions import (
    EntityInUseError,
    RecipeNotFoundError,
)
from costbook_kernel.logging_config import get_logger
from costbook_kernel.models.product import Product, ProductBuild
from costbook_kernel.models.recipe import Recipe
from costbook_kernel.models.sale import SaleItem
from costbook_kernel.services.base import BaseService
from costbook_kernel.services.row_locks import lock_products

logger = get_logger("services.product")


class ProductService(BaseService[Product]):

    def create(self, user_id: UUID, spec: ProductSpec) -> Product:
        self._validate(user_id, spec)
        product = Product(
            user_id=user_id,
            name=spec.name,
            sku=spec.sku,
            recipe_id=spec.recipe_id,
            selling_price=round_cost(spec.selling_price),
            current_stock=ZERO,
            notes=spec.notes,
        )
        self.session.add(product)
        self.session.flush()
        logger.info(
            "product_created",
            extra={
                "product_id": str(product.id),
                "recipe_id": str(spec.recipe_id) if spec.recipe_id else None,
            },
        )
        return product

    def update(self, user_id: UUID, product_id: UUID, spec: ProductSpec) -> Product:
        product = lock_products(self.session, user_id, [product_id])[product_id]
        self._validate(user_id, spec)
        product.name = spec.name
        product.sku = spec.sku
        product.recipe_id = spec.recipe_id
        product.selling_price = round_cost(spec.selling_price)
        product.notes = spec.notes
        self.session.flush()
        logger.info("product_updated", extra={"product_id": str(product.id)})
        return product

    def delete(self, user_id: UUID, product_id: UUID) -> None:
        product = lock_products(self.session, user_id, [product_id])[product_id]

        builds = self.session.execute(
            select(func.count()).select_from(ProductBuild).where(
                ProductBuild.product_id == product_id
            )
        ).scalar_one()
        if builds:
            raise EntityInUseError("Product", str(product_id), f"{builds} build(s)")

        items = self.session.execute(
            select(func.count()).select_from(SaleItem).where(
                SaleItem.product_id == product_id
            )
        ).scalar_one()
        if items:
            raise EntityInUseError("Product", str(product_id), f"{items} sale item(s)")

        self.session.delete(product)
        self.session.flush()
        logger.info("product_deleted", extra={"product_id": str(product_id)})

    def _validate(self, user_id: UUID, spec: ProductSpec) -> None:
        require_cost("selling_price", spec.selling_price)
        if spec.recipe_id is not None:
            self._get_owned(Recipe, user_id, spec.recipe_id, RecipeNotFoundError)
