"""
RecipeCostCalculator -- live recipe cost from the material ledger.

Responsibility:
    Computes the total and per-yield-unit cost of a recipe from the current
    material averages, and scales a recipe into the per-material consumption
    of a build.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Callers pass in the
    recipe snapshot and a mapping of material snapshots; nothing is read or
    written here, so the calculator is safe to call concurrently.

Invariants enforced:
    - Recipe cost is never persisted; it is recomputed on demand.
    - Lines whose material is missing contribute 0 and are flagged.
    - yield_quantity <= 0 gives a per-unit cost of 0 (cost) or
      InvalidYieldError (build planning).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from costbook_kernel.db.types import COST_DECIMAL_PLACES, ZERO, round_cost
from costbook_kernel.domain.dtos import (
    MaterialSnapshot,
    RecipeCost,
    RecipeCostLine,
    RecipeSnapshot,
)
from costbook_kernel.exceptions import (
    InvalidQuantityError,
    InvalidYieldError,
    MaterialNotFoundError,
)
from costbook_kernel.logging_config import get_logger

logger = get_logger("domain.recipe_cost")


@dataclass(frozen=True)
class ConsumptionLine:
    """Quantity of one material a build takes, and its cost at that moment."""

    material_id: UUID
    quantity: Decimal
    unit_cost: Decimal
    line_cost: Decimal
    details: str | None = None


@dataclass(frozen=True)
class BuildPlan:
    quantity_to_build: Decimal
    lines: tuple[ConsumptionLine, ...]
    total_cost: Decimal

    def consumption_by_material(self) -> dict[UUID, Decimal]:
        """Summed consumption per material (a recipe may list one twice)."""
        totals: dict[UUID, Decimal] = {}
        for line in self.lines:
            totals[line.material_id] = totals.get(line.material_id, ZERO) + line.quantity
        return totals


class RecipeCostCalculator:
    """
    Stateless cost calculator.

    ``places`` is the quantization applied to derived figures (per-unit
    cost, consumption, line cost).  It should match the ledger policy.
    """

    def __init__(self, places: int = COST_DECIMAL_PLACES):
        self._places = places

    def cost(
        self,
        recipe: RecipeSnapshot,
        materials: Mapping[UUID, MaterialSnapshot],
    ) -> RecipeCost:
        lines: list[RecipeCostLine] = []
        total = ZERO
        for line in recipe.lines:
            material = materials.get(line.material_id)
            if material is None:
                lines.append(
                    RecipeCostLine(
                        material_id=line.material_id,
                        quantity=line.quantity,
                        unit_cost=ZERO,
                        line_cost=ZERO,
                        missing=True,
                    )
                )
                continue
            line_cost = line.quantity * material.avg_cost
            total += line_cost
            lines.append(
                RecipeCostLine(
                    material_id=line.material_id,
                    quantity=line.quantity,
                    unit_cost=material.avg_cost,
                    line_cost=round_cost(line_cost, self._places),
                )
            )

        missing = [str(line.material_id) for line in lines if line.missing]
        if missing:
            logger.warning(
                "recipe_material_missing",
                extra={"recipe_id": str(recipe.id), "material_ids": missing},
            )

        if recipe.yield_quantity > 0:
            per_unit = total / recipe.yield_quantity
        else:
            per_unit = ZERO

        return RecipeCost(
            recipe_id=recipe.id,
            total=round_cost(total, self._places),
            per_yield_unit=round_cost(per_unit, self._places),
            lines=tuple(lines),
        )

    def plan_build(
        self,
        recipe: RecipeSnapshot,
        materials: Mapping[UUID, MaterialSnapshot],
        quantity_to_build: Decimal,
    ) -> BuildPlan:
        """
        Scale ``recipe`` to ``quantity_to_build`` units.

        consumption = line.quantity * quantity_to_build / yield_quantity,
        quantized so that the decrement applied to stock is exactly the
        value stored on the build line and later restored.

        Raises:
            InvalidQuantityError: quantity_to_build <= 0.
            InvalidYieldError: recipe yield_quantity <= 0.
            MaterialNotFoundError: a recipe line references a missing material.
        """
        if quantity_to_build <= 0:
            raise InvalidQuantityError("quantity_to_build", quantity_to_build)
        if recipe.yield_quantity <= 0:
            raise InvalidYieldError(str(recipe.id), recipe.yield_quantity)

        lines: list[ConsumptionLine] = []
        total = ZERO
        for line in recipe.lines:
            material = materials.get(line.material_id)
            if material is None:
                raise MaterialNotFoundError(str(line.material_id))
            consumed = round_cost(
                line.quantity * quantity_to_build / recipe.yield_quantity,
                self._places,
            )
            line_cost = consumed * material.avg_cost
            total += line_cost
            lines.append(
                ConsumptionLine(
                    material_id=line.material_id,
                    quantity=consumed,
                    unit_cost=material.avg_cost,
                    line_cost=round_cost(line_cost, self._places),
                    details=line.details,
                )
            )

        return BuildPlan(
            quantity_to_build=quantity_to_build,
            lines=tuple(lines),
            total_cost=round_cost(total, self._places),
        )
