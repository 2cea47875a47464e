"""
PurchaseJournalService -- reversible purchase entries against the material ledger.

Responsibility:
    Creates, updates and deletes purchase journal entries, and keeps the
    owning material's totals, weighted average and stock consistent with
    them.  Every mutation is "undo the old contribution, apply the new one"
    computed by ``MaterialTotals``.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only; the caller owns
    the transaction.

Invariants enforced:
    - Entry quantity > 0 and cost >= 0 at the stored scale (9 places),
      checked before any mutation; the quantized values are what is booked.
    - The material row is locked before it is read, and before the entry
      row; an update that moves an entry to another material locks both
      materials, in ascending id order.
    - avg_cost is recomputed from totals after every mutation.
    - An entry whose purchase_id points at a vanished order is an
      integrity failure and is never touched.
    - Lowering stock (delete, or update to a smaller quantity) obeys the
      negative-stock policy.

Failure modes:
    - MaterialNotFoundError / PurchaseEntryNotFoundError.
    - InvalidQuantityError / InvalidCostError.
    - InsufficientStockError when the policy rejects negative material stock.
    - OrphanedJournalEntryError.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from costbook_kernel.domain.dtos import PurchaseApplyMode, PurchaseLine
from costbook_kernel.domain.ledger_math import (
    MaterialTotals,
    validate_entry,
    weighted_average,
)
from costbook_kernel.exceptions import (
    InsufficientStockError,
    OptimisticLockError,
    OrphanedJournalEntryError,
    PurchaseEntryNotFoundError,
    ValidationError,
)
from costbook_kernel.logging_config import get_logger
from costbook_kernel.models.material import Material
from costbook_kernel.models.purchase import PurchaseJournalEntry, PurchaseOrder
from costbook_kernel.services.base import BaseService
from costbook_kernel.services.row_locks import lock_materials

logger = get_logger("services.purchase_journal")


def totals_of(material: Material) -> MaterialTotals:
    return MaterialTotals(
        total_quantity=material.total_quantity,
        total_cost=material.total_cost,
        current_stock=material.current_stock,
    )


def write_totals(material: Material, totals: MaterialTotals, places: int) -> None:
    material.total_quantity = totals.total_quantity
    material.total_cost = totals.total_cost
    material.current_stock = totals.current_stock
    material.avg_cost = totals.average_cost(places)


class PurchaseJournalService(BaseService[PurchaseJournalEntry]):
    """
    Contract:
        Methods return the (flushed) ORM entry; callers convert to DTOs.
    """

    def apply(
        self,
        user_id: UUID,
        mode: PurchaseApplyMode,
        *,
        line: PurchaseLine | None = None,
        entry_id: UUID | None = None,
        purchase_id: UUID | None = None,
    ) -> PurchaseJournalEntry | None:
        """
        Single entry point mirroring Apply(entry, mode).

        CREATE needs ``line``; UPDATE needs ``entry_id`` and ``line``;
        DELETE needs ``entry_id`` and returns None.
        """
        mode = PurchaseApplyMode(mode)
        if mode is PurchaseApplyMode.CREATE:
            if line is None:
                raise ValidationError("Creating a purchase entry requires a line")
            return self.create_entry(user_id, line, purchase_id=purchase_id)
        if entry_id is None:
            raise ValidationError(f"{mode.value} requires an entry_id")
        if mode is PurchaseApplyMode.UPDATE:
            if line is None:
                raise ValidationError("Updating a purchase entry requires a line")
            return self.update_entry(user_id, entry_id, line)
        self.delete_entry(user_id, entry_id)
        return None

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_entry(
        self,
        user_id: UUID,
        line: PurchaseLine,
        *,
        purchase_id: UUID | None = None,
    ) -> PurchaseJournalEntry:
        material = lock_materials(self.session, user_id, [line.material_id])[
            line.material_id
        ]
        quantity = self.crafting_quantity(material, line)
        quantity, cost = validate_entry(quantity, line.total_cost)

        places = self.policy.cost_places
        write_totals(
            material,
            totals_of(material).add_entry(quantity, cost),
            places,
        )

        entry = PurchaseJournalEntry(
            user_id=user_id,
            material_id=material.id,
            purchase_id=purchase_id,
            purchase_date=line.purchase_date or self.clock.today(),
            total_cost=cost,
            total_quantity=quantity,
            avg_cost=weighted_average(cost, quantity, places),
            supplier_name=line.supplier_name,
            supplier_contact=line.supplier_contact,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "purchase_entry_applied",
            extra={
                "mode": PurchaseApplyMode.CREATE.value,
                "entry_id": str(entry.id),
                "material_id": str(material.id),
                "purchase_id": str(purchase_id) if purchase_id else None,
                "quantity": quantity,
                "cost": cost,
                "avg_cost": material.avg_cost,
                "current_stock": material.current_stock,
            },
        )
        return entry

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_entry(
        self,
        user_id: UUID,
        entry_id: UUID,
        line: PurchaseLine,
    ) -> PurchaseJournalEntry:
        old_material_id = self._peek_material_id(user_id, entry_id)
        new_material_id = line.material_id

        materials = lock_materials(
            self.session, user_id, [old_material_id, new_material_id]
        )
        entry = self._load_entry(user_id, entry_id, old_material_id)
        old_material = materials[old_material_id]
        new_material = materials[new_material_id]

        new_quantity = self.crafting_quantity(new_material, line)
        new_quantity, new_cost = validate_entry(new_quantity, line.total_cost)
        old_quantity = entry.total_quantity
        old_cost = entry.total_cost

        places = self.policy.cost_places
        if old_material_id == new_material_id:
            self._check_stock(old_material, old_quantity - new_quantity)
            write_totals(
                old_material,
                totals_of(old_material).replace_entry(
                    old_quantity, old_cost, new_quantity, new_cost
                ),
                places,
            )
        else:
            self._check_stock(old_material, old_quantity)
            write_totals(
                old_material,
                totals_of(old_material).remove_entry(old_quantity, old_cost),
                places,
            )
            write_totals(
                new_material,
                totals_of(new_material).add_entry(new_quantity, new_cost),
                places,
            )

        entry.material_id = new_material_id
        entry.total_quantity = new_quantity
        entry.total_cost = new_cost
        entry.avg_cost = weighted_average(new_cost, new_quantity, places)
        if line.purchase_date is not None:
            entry.purchase_date = line.purchase_date
        entry.supplier_name = line.supplier_name
        entry.supplier_contact = line.supplier_contact
        self.session.flush()

        logger.info(
            "purchase_entry_applied",
            extra={
                "mode": PurchaseApplyMode.UPDATE.value,
                "entry_id": str(entry.id),
                "material_id": str(new_material_id),
                "previous_material_id": str(old_material_id),
                "old_quantity": old_quantity,
                "new_quantity": new_quantity,
                "old_cost": old_cost,
                "new_cost": new_cost,
            },
        )
        return entry

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_entry(self, user_id: UUID, entry_id: UUID) -> None:
        material_id = self._peek_material_id(user_id, entry_id)
        material = lock_materials(self.session, user_id, [material_id])[material_id]
        entry = self._load_entry(user_id, entry_id, material_id)
        self._check_stock(material, entry.total_quantity)

        write_totals(
            material,
            totals_of(material).remove_entry(entry.total_quantity, entry.total_cost),
            self.policy.cost_places,
        )
        self.session.delete(entry)
        self.session.flush()

        logger.info(
            "purchase_entry_applied",
            extra={
                "mode": PurchaseApplyMode.DELETE.value,
                "entry_id": str(entry_id),
                "material_id": str(material.id),
                "quantity": entry.total_quantity,
                "cost": entry.total_cost,
                "avg_cost": material.avg_cost,
                "current_stock": material.current_stock,
            },
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def crafting_quantity(material: Material, line: PurchaseLine) -> Decimal:
        if line.in_purchase_units:
            return material.to_crafting_units(line.total_quantity)
        return line.total_quantity

    def _peek_material_id(self, user_id: UUID, entry_id: UUID) -> UUID:
        """Unlocked read of an entry's material, so its lock can be taken first."""
        material_id = self.session.execute(
            select(PurchaseJournalEntry.material_id).where(
                PurchaseJournalEntry.id == entry_id,
                PurchaseJournalEntry.user_id == user_id,
            )
        ).scalar_one_or_none()
        if material_id is None:
            raise PurchaseEntryNotFoundError(str(entry_id))
        return material_id

    def _load_entry(
        self,
        user_id: UUID,
        entry_id: UUID,
        expected_material_id: UUID,
    ) -> PurchaseJournalEntry:
        entry = self._get_owned(
            PurchaseJournalEntry,
            user_id,
            entry_id,
            PurchaseEntryNotFoundError,
            for_update=True,
        )
        if entry.material_id != expected_material_id:
            # Moved to another material between the peek and the lock
            raise OptimisticLockError("PurchaseJournalEntry", str(entry_id))
        if entry.purchase_id is not None:
            order_id = self.session.execute(
                select(PurchaseOrder.id).where(PurchaseOrder.id == entry.purchase_id)
            ).scalar_one_or_none()
            if order_id is None:
                logger.error(
                    "orphaned_journal_entry",
                    extra={
                        "entry_id": str(entry.id),
                        "purchase_id": str(entry.purchase_id),
                    },
                )
                raise OrphanedJournalEntryError(str(entry.id), str(entry.purchase_id))
        return entry

    def _check_stock(self, material: Material, decrement: Decimal) -> None:
        if self.policy.would_violate(material.current_stock, decrement):
            raise InsufficientStockError(
                "Material", str(material.id), decrement, material.current_stock
            )
