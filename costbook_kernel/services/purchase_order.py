"""
PurchaseOrderService -- an order header cascading to N journal entries.

Responsibility:
    Create, update and delete purchase orders.  Every child change goes
    through PurchaseJournalService, so the material ledgers see exactly the
    same arithmetic as standalone purchases.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only.  The whole cascade
    runs inside the caller's single transaction, so a failure on item k
    rolls back items 1..k-1 and the header together.

Invariants enforced:
    - Every line is validated (quantity, cost, material exists, entry
      belongs to this order) before the first mutation.
    - All materials the cascade touches are locked up front in ascending id
      order, before any entry row.
    - Update is a three-phase diff keyed by entry id: removed entries are
      deleted, changed entries updated, new lines created.  Unchanged
      entries are not touched, and there is never an empty-order window.
    - Delete removes children before the header.
"""

from uuid import UUID

from sqlalchemy import select

from costbook_kernel.domain.dtos import OrderHeader, PurchaseLine
from costbook_kernel.domain.ledger_math import validate_entry
from costbook_kernel.exceptions import (
    PurchaseEntryNotFoundError,
    PurchaseOrderNotFoundError,
    ValidationError,
)
from costbook_kernel.logging_config import get_logger
from costbook_kernel.models.purchase import (
    PurchaseJournalEntry,
    PurchaseOrder,
    PurchaseOrderStatus,
)
from costbook_kernel.services.base import BaseService
from costbook_kernel.services.purchase_journal import PurchaseJournalService
from costbook_kernel.services.row_locks import lock_materials

logger = get_logger("services.purchase_order")


def parse_status(value: str | PurchaseOrderStatus) -> PurchaseOrderStatus:
    try:
        return PurchaseOrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in PurchaseOrderStatus)
        raise ValidationError(
            f"Unknown purchase order status {value!r}; expected one of {allowed}"
        ) from None


class PurchaseOrderService(BaseService[PurchaseOrder]):

    def __init__(self, session, policy=None, clock=None):
        super().__init__(session, policy, clock)
        self.journal = PurchaseJournalService(session, self.policy, self.clock)

    def create_with_items(
        self,
        user_id: UUID,
        header: OrderHeader,
        lines: list[PurchaseLine] | tuple[PurchaseLine, ...],
    ) -> PurchaseOrder:
        status = parse_status(header.status)
        for line in lines:
            if line.entry_id is not None:
                raise ValidationError("New orders cannot reference existing entries")
        self._validate_lines(user_id, lines)

        order = PurchaseOrder(
            user_id=user_id,
            name=header.name,
            purchase_date=header.purchase_date,
            status=status,
            notes=header.notes,
        )
        self.session.add(order)
        self.session.flush()

        for line in lines:
            self.journal.create_entry(
                user_id, self._dated(line, header), purchase_id=order.id
            )

        logger.info(
            "purchase_order_created",
            extra={"purchase_id": str(order.id), "item_count": len(lines)},
        )
        return order

    def update_with_items(
        self,
        user_id: UUID,
        order_id: UUID,
        header: OrderHeader,
        lines: list[PurchaseLine] | tuple[PurchaseLine, ...],
    ) -> PurchaseOrder:
        order = self._get_owned(
            PurchaseOrder, user_id, order_id, PurchaseOrderNotFoundError, for_update=True
        )
        status = parse_status(header.status)
        existing = {entry.id: entry for entry in self._entries(user_id, order.id)}

        kept_ids = set()
        for line in lines:
            if line.entry_id is None:
                continue
            if line.entry_id not in existing:
                raise PurchaseEntryNotFoundError(str(line.entry_id))
            if line.entry_id in kept_ids:
                raise ValidationError(f"Entry {line.entry_id} listed twice")
            kept_ids.add(line.entry_id)

        materials = self._validate_lines(
            user_id,
            lines,
            extra_material_ids=[e.material_id for e in existing.values()],
        )

        removed = [eid for eid in existing if eid not in kept_ids]
        changed = [
            line
            for line in lines
            if line.entry_id is not None
            and self._differs(
                existing[line.entry_id],
                self._dated(line, header),
                *validate_entry(
                    self.journal.crafting_quantity(materials[line.material_id], line),
                    line.total_cost,
                ),
            )
        ]
        added = [line for line in lines if line.entry_id is None]

        for entry_id in removed:
            self.journal.delete_entry(user_id, entry_id)
        for line in changed:
            self.journal.update_entry(user_id, line.entry_id, self._dated(line, header))
        for line in added:
            self.journal.create_entry(
                user_id, self._dated(line, header), purchase_id=order.id
            )

        order.name = header.name
        order.purchase_date = header.purchase_date
        order.status = status
        order.notes = header.notes
        self.session.flush()

        logger.info(
            "purchase_order_updated",
            extra={
                "purchase_id": str(order.id),
                "previous_item_count": len(existing),
                "removed": len(removed),
                "changed": len(changed),
                "added": len(added),
            },
        )
        return order

    def delete(self, user_id: UUID, order_id: UUID) -> None:
        order = self._get_owned(
            PurchaseOrder, user_id, order_id, PurchaseOrderNotFoundError, for_update=True
        )
        entries = self._entries(user_id, order.id)
        lock_materials(self.session, user_id, [e.material_id for e in entries])

        entry_ids = [e.id for e in entries]
        for entry_id in entry_ids:
            self.journal.delete_entry(user_id, entry_id)

        self.session.delete(order)
        self.session.flush()

        logger.info(
            "purchase_order_deleted",
            extra={"purchase_id": str(order_id), "item_count": len(entry_ids)},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _entries(self, user_id: UUID, order_id: UUID) -> list[PurchaseJournalEntry]:
        return list(
            self.session.execute(
                select(PurchaseJournalEntry)
                .where(
                    PurchaseJournalEntry.purchase_id == order_id,
                    PurchaseJournalEntry.user_id == user_id,
                )
                .order_by(PurchaseJournalEntry.created_at, PurchaseJournalEntry.id)
            ).scalars()
        )

    def _validate_lines(self, user_id, lines, extra_material_ids=()):
        """Lock every touched material and validate every line.  No mutation."""
        materials = lock_materials(
            self.session,
            user_id,
            [line.material_id for line in lines] + list(extra_material_ids),
        )
        for line in lines:
            quantity = self.journal.crafting_quantity(materials[line.material_id], line)
            validate_entry(quantity, line.total_cost)
        return materials

    @staticmethod
    def _dated(line: PurchaseLine, header: OrderHeader) -> PurchaseLine:
        """Order items inherit the order's date unless they carry their own."""
        if line.purchase_date is not None:
            return line
        return PurchaseLine(
            material_id=line.material_id,
            total_quantity=line.total_quantity,
            total_cost=line.total_cost,
            purchase_date=header.purchase_date,
            supplier_name=line.supplier_name,
            supplier_contact=line.supplier_contact,
            entry_id=line.entry_id,
            in_purchase_units=line.in_purchase_units,
        )

    @staticmethod
    def _differs(
        entry: PurchaseJournalEntry, line: PurchaseLine, quantity, cost
    ) -> bool:
        """Compare at the stored scale, so a line equal once quantized is unchanged."""
        return (
            entry.material_id != line.material_id
            or entry.total_quantity != quantity
            or entry.total_cost != cost
            or entry.purchase_date != line.purchase_date
            or entry.supplier_name != line.supplier_name
            or entry.supplier_contact != line.supplier_contact
        )
