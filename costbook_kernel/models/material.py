"""
Module: costbook_kernel.models.material
Responsibility: ORM persistence for raw materials and their running ledger
    totals (purchased quantity, purchased cost, weighted-average cost) plus
    current physical stock.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - total_quantity / total_cost are cumulative sums over every purchase
      journal entry ever applied.  Consumption never touches them.
    - avg_cost == total_cost / total_quantity (0 when total_quantity is 0),
      recomputed by PurchaseJournalService on every journal mutation.
    - current_stock moves on purchases (+), builds (-) and their reversals.
    - version is the optimistic-lock counter (SQLAlchemy version_id_col);
      a concurrent writer that slipped past the row lock fails with
      StaleDataError at flush.

Failure modes:
    - StaleDataError on flush if another transaction bumped version.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from costbook_kernel.db.base import OwnedBase
from costbook_kernel.db.types import ExactDecimal


class Material(OwnedBase):
    """
    A raw input bought in purchase units and consumed in crafting units.

    Guarantees:
        - conversion_factor > 0 (validated by MaterialService).
        - Ledger columns are only written by PurchaseJournalService and
          ManufacturingService.
    """

    __tablename__ = "materials"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    purchase_unit: Mapped[str] = mapped_column(String(50), nullable=False)
    crafting_unit: Mapped[str] = mapped_column(String(50), nullable=False)

    # 1 purchase unit == conversion_factor crafting units
    conversion_factor: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=Decimal("1")
    )

    # Ledger totals
    total_quantity: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=Decimal("0")
    )
    total_cost: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=Decimal("0")
    )
    avg_cost: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=Decimal("0")
    )

    # Physical stock in crafting units
    current_stock: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=Decimal("0")
    )
    minimum_threshold: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=Decimal("0")
    )

    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    inventoryable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_crafting_units(self, purchase_quantity: Decimal) -> Decimal:
        """Convert a quantity in purchase units to crafting units."""
        return purchase_quantity * self.conversion_factor

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.minimum_threshold

    def to_dto(self):
        """Convert ORM model to a frozen MaterialSnapshot."""
        from costbook_kernel.domain.dtos import MaterialSnapshot

        return MaterialSnapshot(
            id=self.id,
            name=self.name,
            purchase_unit=self.purchase_unit,
            crafting_unit=self.crafting_unit,
            conversion_factor=self.conversion_factor,
            total_quantity=self.total_quantity,
            total_cost=self.total_cost,
            avg_cost=self.avg_cost,
            current_stock=self.current_stock,
            minimum_threshold=self.minimum_threshold,
            sku=self.sku,
            category=self.category,
            status=self.status,
            inventoryable=self.inventoryable,
            notes=self.notes,
            version=self.version,
        )

    def __repr__(self) -> str:
        return (
            f"<Material {self.id} {self.name!r} stock={self.current_stock} "
            f"avg={self.avg_cost}>"
        )
