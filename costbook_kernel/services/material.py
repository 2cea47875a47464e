"""
MaterialService -- material lifecycle.

Responsibility:
    Create, update and delete materials.  Ledger columns (totals, average,
    stock) are never written here directly: an opening balance is booked as
    an ordinary purchase journal entry, so the average stays a pure function
    of the purchase history.

Invariants enforced:
    - conversion_factor > 0.
    - minimum_threshold is clamped to >= 0.
    - A material referenced by journal entries or build lines cannot be
      deleted.  Recipe lines may dangle; the cost calculator flags them.
"""

from uuid import UUID

from sqlalchemy import func, select

from costbook_kernel.db.types import ZERO, round_cost
from costbook_kernel.domain.dtos import MaterialSpec, PurchaseLine
from costbook_kernel.domain.ledger_math import (
    require_cost,
    require_quantity,
    validate_entry,
)
from costbook_kernel.exceptions import (
    EntityInUseError,
    ValidationError,
)
from costbook_kernel.logging_config import get_logger
from costbook_kernel.models.material import Material
from costbook_kernel.models.product import ProductBuildLine
from costbook_kernel.models.purchase import PurchaseJournalEntry
from costbook_kernel.services.base import BaseService
from costbook_kernel.services.purchase_journal import PurchaseJournalService
from costbook_kernel.services.row_locks import lock_materials

logger = get_logger("services.material")


class MaterialService(BaseService[Material]):

    def __init__(self, session, policy=None, clock=None):
        super().__init__(session, policy, clock)
        self.journal = PurchaseJournalService(session, self.policy, self.clock)

    def create(self, user_id: UUID, spec: MaterialSpec) -> Material:
        self._validate(spec)
        opening = self._opening_balance(spec)

        material = Material(
            user_id=user_id,
            total_quantity=ZERO,
            total_cost=ZERO,
            avg_cost=ZERO,
            current_stock=ZERO,
        )
        self._assign(material, spec)
        self.session.add(material)
        self.session.flush()

        logger.info(
            "material_created",
            extra={"material_id": str(material.id), "material_name": spec.name},
        )

        if opening is not None:
            quantity, cost = opening
            self.journal.create_entry(
                user_id,
                PurchaseLine(
                    material_id=material.id,
                    total_quantity=quantity,
                    total_cost=cost,
                    supplier_name="Opening balance",
                ),
            )
        return material

    def update(self, user_id: UUID, material_id: UUID, spec: MaterialSpec) -> Material:
        """Update descriptive fields.  Totals and stock are left alone."""
        self._validate(spec)
        material = lock_materials(self.session, user_id, [material_id])[material_id]
        self._assign(material, spec)
        self.session.flush()
        logger.info("material_updated", extra={"material_id": str(material_id)})
        return material

    def delete(self, user_id: UUID, material_id: UUID) -> None:
        material = lock_materials(self.session, user_id, [material_id])[material_id]

        entries = self.session.execute(
            select(func.count()).select_from(PurchaseJournalEntry).where(
                PurchaseJournalEntry.material_id == material_id
            )
        ).scalar_one()
        if entries:
            raise EntityInUseError(
                "Material", str(material_id), f"{entries} purchase journal entries"
            )

        build_lines = self.session.execute(
            select(func.count()).select_from(ProductBuildLine).where(
                ProductBuildLine.material_id == material_id
            )
        ).scalar_one()
        if build_lines:
            raise EntityInUseError(
                "Material", str(material_id), f"{build_lines} build line(s)"
            )

        self.session.delete(material)
        self.session.flush()
        logger.info("material_deleted", extra={"material_id": str(material_id)})

    @staticmethod
    def _validate(spec: MaterialSpec) -> None:
        if not spec.name or not spec.name.strip():
            raise ValidationError("Material name is required")
        require_quantity("conversion_factor", spec.conversion_factor)
        if not spec.minimum_threshold.is_finite():
            raise ValidationError(
                f"minimum_threshold must be a finite number, got {spec.minimum_threshold}"
            )
        require_cost("minimum_threshold", max(spec.minimum_threshold, ZERO))

    @staticmethod
    def _opening_balance(spec: MaterialSpec):
        quantity = spec.initial_quantity or ZERO
        cost = spec.initial_cost or ZERO
        if quantity == 0 and cost == 0:
            return None
        return validate_entry(quantity, cost)

    @staticmethod
    def _assign(material: Material, spec: MaterialSpec) -> None:
        material.name = spec.name.strip()
        material.purchase_unit = spec.purchase_unit
        material.crafting_unit = spec.crafting_unit
        material.conversion_factor = round_cost(spec.conversion_factor)
        material.minimum_threshold = max(round_cost(spec.minimum_threshold), ZERO)
        material.sku = spec.sku
        material.category = spec.category
        material.status = spec.status
        material.inventoryable = spec.inventoryable
        material.notes = spec.notes
