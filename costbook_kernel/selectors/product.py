"""
Module: costbook_kernel.selectors.product
Responsibility: Products and their build history.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from costbook_kernel.domain.dtos import BuildSnapshot, ProductSnapshot
from costbook_kernel.exceptions import BuildNotFoundError, ProductNotFoundError
from costbook_kernel.models.product import Product, ProductBuild
from costbook_kernel.selectors.base import BaseSelector


class ProductSelector(BaseSelector):

    def get(self, user_id: UUID, product_id: UUID) -> ProductSnapshot | None:
        product = self.session.execute(
            select(Product).where(Product.id == product_id, Product.user_id == user_id)
        ).scalar_one_or_none()
        return product.to_dto() if product else None

    def require(self, user_id: UUID, product_id: UUID) -> ProductSnapshot:
        snapshot = self.get(user_id, product_id)
        if snapshot is None:
            raise ProductNotFoundError(str(product_id))
        return snapshot

    def list_products(self, user_id: UUID) -> list[ProductSnapshot]:
        rows = self.session.execute(
            select(Product)
            .where(Product.user_id == user_id)
            .order_by(Product.name, Product.id)
        ).scalars()
        return [p.to_dto() for p in rows]

    def build(self, user_id: UUID, build_id: UUID) -> BuildSnapshot:
        build = self.session.execute(
            select(ProductBuild)
            .options(selectinload(ProductBuild.lines))
            .where(ProductBuild.id == build_id, ProductBuild.user_id == user_id)
        ).scalar_one_or_none()
        if build is None:
            raise BuildNotFoundError(str(build_id))
        return build.to_dto()

    def builds(self, user_id: UUID, product_id: UUID | None = None) -> list[BuildSnapshot]:
        """Build history, newest first."""
        stmt = (
            select(ProductBuild)
            .options(selectinload(ProductBuild.lines))
            .where(ProductBuild.user_id == user_id)
        )
        if product_id is not None:
            stmt = stmt.where(ProductBuild.product_id == product_id)
        stmt = stmt.order_by(ProductBuild.built_at.desc(), ProductBuild.id)
        return [b.to_dto() for b in self.session.execute(stmt).scalars()]
