"""
Module: costbook_kernel.selectors.recipe
Responsibility: Read access to recipes and their live cost.

Recipe cost is always computed on read from the current material
averages; it is never stored.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from costbook_kernel.db.types import COST_DECIMAL_PLACES
from costbook_kernel.domain.dtos import RecipeCost, RecipeSnapshot
from costbook_kernel.domain.recipe_cost import RecipeCostCalculator
from costbook_kernel.exceptions import RecipeNotFoundError
from costbook_kernel.models.recipe import Recipe
from costbook_kernel.selectors.base import BaseSelector
from costbook_kernel.selectors.material import MaterialSelector


class RecipeSelector(BaseSelector):

    def __init__(self, session, places: int = COST_DECIMAL_PLACES):
        super().__init__(session)
        self.calculator = RecipeCostCalculator(places)
        self.materials = MaterialSelector(session)

    def get(self, user_id: UUID, recipe_id: UUID) -> RecipeSnapshot | None:
        recipe = self.session.execute(
            select(Recipe)
            .options(selectinload(Recipe.lines))
            .where(Recipe.id == recipe_id, Recipe.user_id == user_id)
        ).scalar_one_or_none()
        return recipe.to_dto() if recipe else None

    def require(self, user_id: UUID, recipe_id: UUID) -> RecipeSnapshot:
        snapshot = self.get(user_id, recipe_id)
        if snapshot is None:
            raise RecipeNotFoundError(str(recipe_id))
        return snapshot

    def list_recipes(self, user_id: UUID) -> list[RecipeSnapshot]:
        rows = self.session.execute(
            select(Recipe)
            .options(selectinload(Recipe.lines))
            .where(Recipe.user_id == user_id)
            .order_by(Recipe.name, Recipe.id)
        ).scalars()
        return [r.to_dto() for r in rows]

    def cost(self, user_id: UUID, recipe_id: UUID) -> RecipeCost:
        recipe = self.require(user_id, recipe_id)
        return self.cost_of(user_id, recipe)

    def cost_of(self, user_id: UUID, recipe: RecipeSnapshot) -> RecipeCost:
        materials = self.materials.snapshot_map(
            user_id, [line.material_id for line in recipe.lines]
        )
        return self.calculator.cost(recipe, materials)
