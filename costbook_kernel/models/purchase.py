"""
Module: costbook_kernel.models.purchase
Responsibility: ORM persistence for purchase orders and the purchase journal.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Every journal entry belongs to exactly one material (FK, RESTRICT).
    - purchase_id, when set, must reference an existing order (FK, RESTRICT).
      Orders are deleted child-then-parent by PurchaseOrderService; a delete
      that would orphan journal rows fails at the database.
    - total_quantity is always expressed in the material's crafting unit.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from costbook_kernel.db.base import OwnedBase, UUIDString
from costbook_kernel.db.types import ExactDecimal


class PurchaseOrderStatus(str, Enum):
    """Order label.  Status carries no stock semantics; entries do."""

    PENDING = "Pending"
    COMPLETED = "Completed"
    UNPAID = "Unpaid"
    CANCELLED = "Cancelled"


class PurchaseOrder(OwnedBase):
    """Header grouping N purchase journal entries."""

    __tablename__ = "purchase_orders"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PurchaseOrderStatus] = mapped_column(
        SAEnum(
            PurchaseOrderStatus,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=PurchaseOrderStatus.PENDING,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.id} {self.name!r} status={self.status.value}>"


class PurchaseJournalEntry(OwnedBase):
    """
    One logged acquisition of a material.

    Guarantees:
        - total_quantity > 0 and total_cost >= 0 (validated before insert).
        - avg_cost is entry-local and stored for display only; the material's
          own average is derived from its totals, never from these values.
    """

    __tablename__ = "purchase_journal_entries"

    __table_args__ = (
        Index("idx_pje_material", "material_id"),
        Index("idx_pje_purchase", "purchase_id"),
        Index("idx_pje_date", "purchase_date"),
    )

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id", ondelete="RESTRICT"),
        nullable=False,
    )
    purchase_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        nullable=True,
    )

    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    total_quantity: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    avg_cost: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    supplier_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    supplier_contact: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def to_dto(self):
        """Convert ORM model to a frozen PurchaseEntrySnapshot."""
        from costbook_kernel.domain.dtos import PurchaseEntrySnapshot

        return PurchaseEntrySnapshot(
            id=self.id,
            material_id=self.material_id,
            purchase_id=self.purchase_id,
            purchase_date=self.purchase_date,
            total_cost=self.total_cost,
            total_quantity=self.total_quantity,
            avg_cost=self.avg_cost,
            supplier_name=self.supplier_name,
            supplier_contact=self.supplier_contact,
        )

    def __repr__(self) -> str:
        return (
            f"<PurchaseJournalEntry {self.id} material={self.material_id} "
            f"qty={self.total_quantity} cost={self.total_cost}>"
        )
