"""
RecipeService -- recipe lifecycle with a three-phase line diff.

Recipes carry no stock or cost state of their own, so no material rows are
locked here; material existence is checked on write, and the cost is
always derived live by RecipeCostCalculator.
"""

from uuid import UUID

from sqlalchemy import select

from costbook_kernel.db.types import round_cost
from costbook_kernel.domain.dtos import RecipeLine, RecipeSpec
from costbook_kernel.domain.ledger_math import require_quantity
from costbook_kernel.exceptions import (
    InvalidQuantityError,
    InvalidYieldError,
    MaterialNotFoundError,
    RecipeNotFoundError,
    ValidationError,
)
from costbook_kernel.logging_config import get_logger
from costbook_kernel.models.material import Material
from costbook_kernel.models.recipe import Recipe, RecipeMaterial
from costbook_kernel.services.base import BaseService

logger = get_logger("services.recipe")


class RecipeService(BaseService[Recipe]):

    def create(self, user_id: UUID, spec: RecipeSpec) -> Recipe:
        self._validate(user_id, spec, recipe_id="new")

        recipe = Recipe(
            user_id=user_id,
            name=spec.name,
            notes=spec.notes,
            yield_quantity=round_cost(spec.yield_quantity),
            yield_unit=spec.yield_unit,
        )
        recipe.lines = [self._new_line(line, pos) for pos, line in enumerate(spec.lines)]
        self.session.add(recipe)
        self.session.flush()

        logger.info(
            "recipe_created",
            extra={"recipe_id": str(recipe.id), "line_count": len(spec.lines)},
        )
        return recipe

    def update(self, user_id: UUID, recipe_id: UUID, spec: RecipeSpec) -> Recipe:
        """
        Replace header fields and reconcile lines.

        Lines with a ``line_id`` update the matching existing line; lines
        without one are added; existing lines not mentioned are removed.
        """
        recipe = self._get_owned(
            Recipe, user_id, recipe_id, RecipeNotFoundError, for_update=True
        )
        self._validate(user_id, spec, recipe_id=str(recipe_id))

        existing = {line.id: line for line in recipe.lines}
        listed = [line.line_id for line in spec.lines if line.line_id is not None]
        kept = set(listed)
        unknown = kept - set(existing)
        if unknown:
            raise ValidationError(
                f"Recipe {recipe_id} has no lines {sorted(str(i) for i in unknown)}"
            )
        if len(listed) != len(kept):
            raise ValidationError(f"Recipe {recipe_id} update lists a line twice")

        removed = [line for lid, line in existing.items() if lid not in kept]
        for line in removed:
            recipe.lines.remove(line)

        changed = 0
        for pos, spec_line in enumerate(spec.lines):
            if spec_line.line_id is None:
                recipe.lines.append(self._new_line(spec_line, pos))
                continue
            line = existing[spec_line.line_id]
            quantity = round_cost(spec_line.quantity)
            if (
                line.material_id != spec_line.material_id
                or line.quantity != quantity
                or line.details != spec_line.details
            ):
                changed += 1
            line.material_id = spec_line.material_id
            line.quantity = quantity
            line.details = spec_line.details
            line.position = pos

        recipe.name = spec.name
        recipe.notes = spec.notes
        recipe.yield_quantity = round_cost(spec.yield_quantity)
        recipe.yield_unit = spec.yield_unit
        self.session.flush()

        logger.info(
            "recipe_updated",
            extra={
                "recipe_id": str(recipe.id),
                "removed": len(removed),
                "changed": changed,
                "added": sum(1 for line in spec.lines if line.line_id is None),
            },
        )
        return recipe

    def delete(self, user_id: UUID, recipe_id: UUID) -> None:
        """
        Delete a recipe and its lines.

        Products keep their dangling recipe_id (they can no longer be built);
        builds keep their own consumption snapshot.
        """
        recipe = self._get_owned(
            Recipe, user_id, recipe_id, RecipeNotFoundError, for_update=True
        )
        self.session.delete(recipe)
        self.session.flush()
        logger.info("recipe_deleted", extra={"recipe_id": str(recipe_id)})

    def _validate(self, user_id: UUID, spec: RecipeSpec, recipe_id: str) -> None:
        # Checked at the stored 9-place scale
        try:
            require_quantity("yield_quantity", spec.yield_quantity)
        except InvalidQuantityError:
            raise InvalidYieldError(recipe_id, spec.yield_quantity) from None
        for line in spec.lines:
            require_quantity("quantity", line.quantity)

        wanted = {line.material_id for line in spec.lines}
        if not wanted:
            return
        found = set(
            self.session.execute(
                select(Material.id).where(
                    Material.user_id == user_id, Material.id.in_(wanted)
                )
            ).scalars()
        )
        missing = sorted(wanted - found, key=str)
        if missing:
            raise MaterialNotFoundError(str(missing[0]))

    @staticmethod
    def _new_line(line: RecipeLine, position: int) -> RecipeMaterial:
        return RecipeMaterial(
            material_id=line.material_id,
            quantity=round_cost(line.quantity),
            details=line.details,
            position=position,
        )
