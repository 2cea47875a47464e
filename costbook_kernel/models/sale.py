"""
Module: costbook_kernel.models.sale
Responsibility: ORM persistence for sales and their line items.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - status is one of Draft / Completed / Cancelled; transitions are
      validated against SALE_WORKFLOW before this column is written.
    - SaleItem.cost_per_unit_at_sale is captured once, when the item is
      created, and is never recomputed.
    - subtotal == quantity * price_per_unit; Sale.total_amount == sum of
      item subtotals.  Both are maintained by SalesService.
    - SaleItem.product_id is a soft reference and may be NULL for free-text
      lines, which carry no stock effect.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from costbook_kernel.db.base import Base, OwnedBase, UUIDString
from costbook_kernel.db.types import ExactDecimal


class SaleStatus(str, Enum):
    DRAFT = "Draft"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class Sale(OwnedBase):
    """A sale header and its line items."""

    __tablename__ = "sales"

    status: Mapped[SaleStatus] = mapped_column(
        SAEnum(
            SaleStatus,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=SaleStatus.DRAFT,
    )
    customer_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=Decimal("0")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["SaleItem"]] = relationship(
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.position",
    )

    def recompute_total(self) -> None:
        self.total_amount = sum((item.subtotal for item in self.items), Decimal("0"))

    def to_dto(self):
        from costbook_kernel.domain.dtos import SaleItemSnapshot, SaleSnapshot

        return SaleSnapshot(
            id=self.id,
            status=self.status.value,
            customer_details=self.customer_details,
            sale_date=self.sale_date,
            total_amount=self.total_amount,
            notes=self.notes,
            items=tuple(
                SaleItemSnapshot(
                    id=item.id,
                    product_id=item.product_id,
                    description=item.description,
                    quantity=item.quantity,
                    price_per_unit=item.price_per_unit,
                    cost_per_unit_at_sale=item.cost_per_unit_at_sale,
                    subtotal=item.subtotal,
                )
                for item in self.items
            ),
        )

    def __repr__(self) -> str:
        return f"<Sale {self.id} status={self.status.value} total={self.total_amount}>"


class SaleItem(Base):
    """One line of a sale.  cost_per_unit_at_sale is a historical fact."""

    __tablename__ = "sale_items"

    sale_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True, index=True
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    cost_per_unit_at_sale: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False
    )
    subtotal: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    sale: Mapped[Sale] = relationship(back_populates="items")
