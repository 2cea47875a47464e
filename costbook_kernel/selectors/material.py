"""
Module: costbook_kernel.selectors.material
Responsibility: Read access to materials and the purchase journal.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select

from costbook_kernel.domain.dtos import MaterialSnapshot, PurchaseEntrySnapshot
from costbook_kernel.exceptions import MaterialNotFoundError
from costbook_kernel.models.material import Material
from costbook_kernel.models.purchase import PurchaseJournalEntry
from costbook_kernel.selectors.base import BaseSelector


class MaterialSelector(BaseSelector):

    def get(self, user_id: UUID, material_id: UUID) -> MaterialSnapshot | None:
        material = self.session.execute(
            select(Material).where(
                Material.id == material_id, Material.user_id == user_id
            )
        ).scalar_one_or_none()
        return material.to_dto() if material else None

    def require(self, user_id: UUID, material_id: UUID) -> MaterialSnapshot:
        snapshot = self.get(user_id, material_id)
        if snapshot is None:
            raise MaterialNotFoundError(str(material_id))
        return snapshot

    def list_materials(self, user_id: UUID) -> list[MaterialSnapshot]:
        rows = self.session.execute(
            select(Material)
            .where(Material.user_id == user_id)
            .order_by(Material.name, Material.id)
        ).scalars()
        return [m.to_dto() for m in rows]

    def snapshot_map(
        self,
        user_id: UUID,
        material_ids: Iterable[UUID] | None = None,
    ) -> dict[UUID, MaterialSnapshot]:
        """Current ledger state keyed by id, as RecipeCostCalculator expects."""
        stmt = select(Material).where(Material.user_id == user_id)
        if material_ids is not None:
            ids = set(material_ids)
            if not ids:
                return {}
            stmt = stmt.where(Material.id.in_(ids))
        return {m.id: m.to_dto() for m in self.session.execute(stmt).scalars()}

    def low_stock(self, user_id: UUID) -> list[MaterialSnapshot]:
        """Inventoryable materials at or below their minimum threshold."""
        rows = self.session.execute(
            select(Material)
            .where(Material.user_id == user_id, Material.inventoryable.is_(True))
            .order_by(Material.name, Material.id)
        ).scalars()
        # Compared in Python: SQLite holds these columns as decimal text
        return [
            m.to_dto() for m in rows if m.current_stock <= m.minimum_threshold
        ]

    def entries(
        self,
        user_id: UUID,
        material_id: UUID | None = None,
    ) -> list[PurchaseEntrySnapshot]:
        """Journal entries, newest purchase date first."""
        stmt = select(PurchaseJournalEntry).where(
            PurchaseJournalEntry.user_id == user_id
        )
        if material_id is not None:
            stmt = stmt.where(PurchaseJournalEntry.material_id == material_id)
        stmt = stmt.order_by(
            PurchaseJournalEntry.purchase_date.desc(),
            PurchaseJournalEntry.created_at.desc(),
            PurchaseJournalEntry.id,
        )
        return [e.to_dto() for e in self.session.execute(stmt).scalars()]
