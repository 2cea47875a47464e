"""
Module: costbook_kernel.models.recipe
Responsibility: ORM persistence for recipes and their material lines.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - RecipeMaterial.material_id is a soft reference (no FK).  A material
      deleted after the recipe was written shows up as a flagged, zero-cost
      line in RecipeCostCalculator rather than breaking the recipe.
    - Lines die with their recipe (delete-orphan cascade).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from costbook_kernel.db.base import Base, OwnedBase, UUIDString
from costbook_kernel.db.types import ExactDecimal


class Recipe(OwnedBase):
    """Bill of materials for one yield batch."""

    __tablename__ = "recipes"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    yield_quantity: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    yield_unit: Mapped[str | None] = mapped_column(String(50), nullable=True)

    lines: Mapped[list["RecipeMaterial"]] = relationship(
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeMaterial.position",
    )

    def to_dto(self):
        from costbook_kernel.domain.dtos import RecipeLineSnapshot, RecipeSnapshot

        return RecipeSnapshot(
            id=self.id,
            name=self.name,
            notes=self.notes,
            yield_quantity=self.yield_quantity,
            yield_unit=self.yield_unit,
            lines=tuple(
                RecipeLineSnapshot(
                    id=line.id,
                    material_id=line.material_id,
                    quantity=line.quantity,
                    details=line.details,
                )
                for line in self.lines
            ),
        )

    def __repr__(self) -> str:
        return f"<Recipe {self.id} {self.name!r} yield={self.yield_quantity}>"


class RecipeMaterial(Base):
    """Quantity of one material (crafting units) required per yield batch."""

    __tablename__ = "recipe_materials"

    recipe_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("recipes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    material_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    details: Mapped[str | None] = mapped_column(String(500), nullable=True)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    recipe: Mapped[Recipe] = relationship(back_populates="lines")
