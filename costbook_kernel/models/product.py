"""
Module: costbook_kernel.models.product
Responsibility: ORM persistence for sellable products and the manufacturing
    build log, including the per-material consumption snapshot of each build.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Product cost is never stored; it is derived live from the linked recipe.
    - ProductBuild.total_cost_at_build and every ProductBuildLine are written
      once at build time and never updated.  Reversal replays the lines, so
      later recipe edits or recipe deletion cannot change what a build undoes.
    - ProductBuildLine.material_id is a soft reference: a material may be
      deleted only while no build line points at it (MaterialService checks),
      so a missing material on reversal is an integrity failure.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from costbook_kernel.db.base import Base, OwnedBase, UUIDString
from costbook_kernel.db.types import ExactDecimal


class Product(OwnedBase):
    """A sellable good, built from at most one recipe."""

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    recipe_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    selling_price: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=Decimal("0")
    )
    current_stock: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=Decimal("0")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from costbook_kernel.domain.dtos import ProductSnapshot

        return ProductSnapshot(
            id=self.id,
            name=self.name,
            sku=self.sku,
            recipe_id=self.recipe_id,
            selling_price=self.selling_price,
            current_stock=self.current_stock,
            notes=self.notes,
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.name!r} stock={self.current_stock}>"


class ProductBuild(OwnedBase):
    """
    One manufacturing event.

    built_at comes from the injected clock rather than a server default, so
    date-range reports are deterministic under a DeterministicClock.
    """

    __tablename__ = "product_builds"

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    recipe_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    quantity_built: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    total_cost_at_build: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    built_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    lines: Mapped[list["ProductBuildLine"]] = relationship(
        back_populates="build",
        cascade="all, delete-orphan",
        order_by="ProductBuildLine.position",
    )

    def to_dto(self):
        from costbook_kernel.domain.dtos import BuildLineSnapshot, BuildSnapshot

        return BuildSnapshot(
            id=self.id,
            product_id=self.product_id,
            recipe_id=self.recipe_id,
            quantity_built=self.quantity_built,
            total_cost_at_build=self.total_cost_at_build,
            notes=self.notes,
            built_at=self.built_at,
            lines=tuple(
                BuildLineSnapshot(
                    material_id=line.material_id,
                    quantity_consumed=line.quantity_consumed,
                    unit_cost_at_build=line.unit_cost_at_build,
                    line_cost=line.line_cost,
                )
                for line in self.lines
            ),
        )

    def __repr__(self) -> str:
        return (
            f"<ProductBuild {self.id} product={self.product_id} "
            f"qty={self.quantity_built} cost={self.total_cost_at_build}>"
        )


class ProductBuildLine(Base):
    """Frozen consumption of one material by one build."""

    __tablename__ = "product_build_lines"

    build_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("product_builds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    material_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    quantity_consumed: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    unit_cost_at_build: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    line_cost: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    details: Mapped[str | None] = mapped_column(String(500), nullable=True)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    build: Mapped[ProductBuild] = relationship(back_populates="lines")
