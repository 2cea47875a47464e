"""
Module: costbook_kernel.selectors.purchase
Responsibility: Purchase orders with their entries and derived totals.
"""

from uuid import UUID

from sqlalchemy import select

from costbook_kernel.domain.dtos import PurchaseOrderSnapshot
from costbook_kernel.exceptions import PurchaseOrderNotFoundError
from costbook_kernel.models.purchase import PurchaseJournalEntry, PurchaseOrder
from costbook_kernel.selectors.base import BaseSelector


class PurchaseSelector(BaseSelector):

    def order(self, user_id: UUID, order_id: UUID) -> PurchaseOrderSnapshot:
        order = self.session.execute(
            select(PurchaseOrder).where(
                PurchaseOrder.id == order_id, PurchaseOrder.user_id == user_id
            )
        ).scalar_one_or_none()
        if order is None:
            raise PurchaseOrderNotFoundError(str(order_id))
        return self._snapshot(user_id, order)

    def orders(self, user_id: UUID) -> list[PurchaseOrderSnapshot]:
        rows = self.session.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.user_id == user_id)
            .order_by(PurchaseOrder.purchase_date.desc(), PurchaseOrder.id)
        ).scalars()
        return [self._snapshot(user_id, order) for order in rows]

    def _snapshot(self, user_id: UUID, order: PurchaseOrder) -> PurchaseOrderSnapshot:
        entries = self.session.execute(
            select(PurchaseJournalEntry)
            .where(
                PurchaseJournalEntry.purchase_id == order.id,
                PurchaseJournalEntry.user_id == user_id,
            )
            .order_by(PurchaseJournalEntry.created_at, PurchaseJournalEntry.id)
        ).scalars()
        return PurchaseOrderSnapshot(
            id=order.id,
            name=order.name,
            purchase_date=order.purchase_date,
            status=order.status.value,
            notes=order.notes,
            entries=tuple(e.to_dto() for e in entries),
        )
