"""
SalesService -- sale lifecycle and its product stock effects.

Responsibility:
    Drafts, draft edits, completion (deducts product stock), reversion
    (returns it), cancellation and deletion, all validated against
    SALE_WORKFLOW.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only.

Invariants enforced:
    - cost_per_unit_at_sale is taken from the live per-yield-unit recipe
      cost when an item is created (or its product changes on a draft edit)
      and is never recomputed afterwards.
    - subtotal = quantity * price_per_unit; total_amount = sum of subtotals.
    - Completion is all-or-nothing: every product is locked (ascending id)
      and checked before any stock moves.
    - Only Draft sales can be edited; only Draft or Cancelled sales can be
      deleted.  Free-text items (no product) never touch stock.

Failure modes:
    - SaleNotFoundError, ProductNotFoundError, InvalidQuantityError,
      InvalidCostError on input.
    - InvalidSaleTransitionError / SaleLockedError on illegal lifecycle
      moves.
    - InsufficientStockError on completion.
    - SaleIntegrityError when a completed sale's product has vanished.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from costbook_kernel.db.types import ZERO, round_cost
from costbook_kernel.domain.dtos import SaleHeader, SaleLine
from costbook_kernel.domain.recipe_cost import RecipeCostCalculator
from costbook_kernel.domain.ledger_math import require_cost, require_quantity
from costbook_kernel.domain.sale_workflow import (
    STOCK_AVAILABLE,
    Transition,
    is_deletable,
    is_editable,
    require_transition,
)
from costbook_kernel.exceptions import (
    InsufficientStockError,
    InvalidSaleTransitionError,
    ProductNotFoundError,
    SaleIntegrityError,
    SaleLockedError,
    SaleNotFoundError,
    ValidationError,
)
from costbook_kernel.logging_config import get_logger
from costbook_kernel.models.material import Material
from costbook_kernel.models.product import Product
from costbook_kernel.models.recipe import Recipe
from costbook_kernel.models.sale import Sale, SaleItem, SaleStatus
from costbook_kernel.services.base import BaseService
from costbook_kernel.services.row_locks import lock_products

logger = get_logger("services.sales")


class SalesService(BaseService[Sale]):

    def __init__(self, session, policy=None, clock=None):
        super().__init__(session, policy, clock)
        self.calculator = RecipeCostCalculator(self.policy.cost_places)

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def create_draft(
        self,
        user_id: UUID,
        header: SaleHeader,
        lines: list[SaleLine] | tuple[SaleLine, ...],
    ) -> Sale:
        for line in lines:
            if line.item_id is not None:
                raise ValidationError("New sales cannot reference existing items")
        items = [self._new_item(user_id, line, pos) for pos, line in enumerate(lines)]

        sale = Sale(
            user_id=user_id,
            status=SaleStatus.DRAFT,
            sale_date=header.sale_date or self.clock.today(),
            customer_details=header.customer_details,
            notes=header.notes,
        )
        sale.items = items
        sale.recompute_total()
        self.session.add(sale)
        self.session.flush()

        logger.info(
            "sale_draft_created",
            extra={
                "sale_id": str(sale.id),
                "item_count": len(items),
                "total_amount": sale.total_amount,
            },
        )
        return sale

    def update_draft(
        self,
        user_id: UUID,
        sale_id: UUID,
        header: SaleHeader,
        lines: list[SaleLine] | tuple[SaleLine, ...],
    ) -> Sale:
        """
        Reconcile a draft's items by item id.

        Kept items retain their cost snapshot unless their product changes.
        """
        sale = self._load(user_id, sale_id)
        if not is_editable(sale.status.value):
            raise SaleLockedError(str(sale_id), sale.status.value, "edit")

        existing = {item.id: item for item in sale.items}
        kept = [line.item_id for line in lines if line.item_id is not None]
        kept_ids = set(kept)
        unknown = kept_ids - set(existing)
        if unknown:
            raise ValidationError(
                f"Sale {sale_id} has no items {sorted(str(i) for i in unknown)}"
            )
        if len(kept) != len(kept_ids):
            raise ValidationError(f"Sale {sale_id} update lists an item twice")

        # Validate and price everything before touching the sale
        prepared: list[tuple[SaleLine, SaleItem | None, Decimal, Decimal | None]] = []
        for pos, line in enumerate(lines):
            quantity, price = self._validate_line(line)
            fresh = None
            if line.item_id is None or line.product_id != existing[line.item_id].product_id:
                fresh = self._new_item(user_id, line, pos)
            prepared.append((line, fresh, quantity, price))

        removed = [item for iid, item in existing.items() if iid not in kept_ids]
        for item in removed:
            sale.items.remove(item)

        for pos, (line, fresh, quantity, price) in enumerate(prepared):
            if line.item_id is None:
                sale.items.append(fresh)
                continue
            item = existing[line.item_id]
            if fresh is not None:
                item.product_id = fresh.product_id
                item.cost_per_unit_at_sale = fresh.cost_per_unit_at_sale
                item.price_per_unit = fresh.price_per_unit
            elif price is not None:
                item.price_per_unit = price
            item.quantity = quantity
            item.description = line.description
            item.subtotal = round_cost(quantity * item.price_per_unit)
            item.position = pos

        if header.sale_date is not None:
            sale.sale_date = header.sale_date
        sale.customer_details = header.customer_details
        sale.notes = header.notes
        sale.recompute_total()
        self.session.flush()

        logger.info(
            "sale_draft_updated",
            extra={
                "sale_id": str(sale.id),
                "removed": len(removed),
                "kept": len(kept),
                "added": sum(1 for line in lines if line.item_id is None),
                "total_amount": sale.total_amount,
            },
        )
        return sale

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def complete(self, user_id: UUID, sale_id: UUID) -> Sale:
        sale = self._load(user_id, sale_id)
        transition = self._transition(sale, SaleStatus.COMPLETED, "complete")

        wanted = self._quantities_by_product(sale)
        products = lock_products(self.session, user_id, wanted)
        if transition.guard is STOCK_AVAILABLE:
            self._require_stock(sale, products, wanted)

        self._move_stock(products, wanted, transition)
        sale.status = SaleStatus.COMPLETED
        self.session.flush()

        logger.info(
            "sale_completed",
            extra={
                "sale_id": str(sale.id),
                "product_count": len(wanted),
                "total_amount": sale.total_amount,
            },
        )
        return sale

    def revert(
        self,
        user_id: UUID,
        sale_id: UUID,
        new_status: SaleStatus | str = SaleStatus.DRAFT,
    ) -> Sale:
        """Return a completed sale's stock and move it to Draft or Cancelled."""
        target = self._parse_status(sale_id, new_status)
        sale = self._load(user_id, sale_id)
        transition = self._transition(sale, target, "revert")

        wanted = self._quantities_by_product(sale)
        products = lock_products(self.session, user_id, wanted, required=False)
        missing = sorted(str(pid) for pid in wanted if pid not in products)
        if missing:
            logger.error(
                "sale_reversion_product_missing",
                extra={"sale_id": str(sale.id), "product_ids": missing},
            )
            raise SaleIntegrityError(
                str(sale.id), f"product(s) no longer exist: {', '.join(missing)}"
            )

        self._move_stock(products, wanted, transition)
        sale.status = target
        self.session.flush()

        logger.info(
            "sale_reverted",
            extra={
                "sale_id": str(sale.id),
                "new_status": target.value,
                "product_count": len(wanted),
            },
        )
        return sale

    def cancel(self, user_id: UUID, sale_id: UUID) -> Sale:
        """Draft -> Cancelled.  A completed sale is cancelled via revert."""
        sale = self._load(user_id, sale_id)
        self._transition(sale, SaleStatus.CANCELLED, "cancel")
        sale.status = SaleStatus.CANCELLED
        self.session.flush()
        logger.info("sale_cancelled", extra={"sale_id": str(sale.id)})
        return sale

    def create_and_complete(
        self,
        user_id: UUID,
        header: SaleHeader,
        lines: list[SaleLine] | tuple[SaleLine, ...],
    ) -> Sale:
        sale = self.create_draft(user_id, header, lines)
        return self.complete(user_id, sale.id)

    def delete(self, user_id: UUID, sale_id: UUID) -> None:
        sale = self._load(user_id, sale_id)
        if not is_deletable(sale.status.value):
            raise SaleLockedError(str(sale_id), sale.status.value, "delete")
        self.session.delete(sale)
        self.session.flush()
        logger.info(
            "sale_deleted",
            extra={"sale_id": str(sale_id), "status": sale.status.value},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, user_id: UUID, sale_id: UUID) -> Sale:
        return self._get_owned(Sale, user_id, sale_id, SaleNotFoundError, for_update=True)

    @staticmethod
    def _parse_status(sale_id: UUID, value: SaleStatus | str) -> SaleStatus:
        try:
            return SaleStatus(value)
        except ValueError:
            raise InvalidSaleTransitionError(str(sale_id), "?", str(value)) from None

    @staticmethod
    def _transition(sale: Sale, target: SaleStatus, action: str) -> Transition:
        transition = require_transition(str(sale.id), sale.status.value, target.value)
        if transition.action != action:
            raise InvalidSaleTransitionError(
                str(sale.id), sale.status.value, target.value
            )
        return transition

    @staticmethod
    def _move_stock(products, wanted: dict[UUID, Decimal], transition: Transition) -> None:
        for product_id, quantity in wanted.items():
            products[product_id].current_stock += transition.stock_effect * quantity

    @staticmethod
    def _require_stock(sale: Sale, products, wanted: dict[UUID, Decimal]) -> None:
        for product_id, quantity in wanted.items():
            product = products[product_id]
            if product.current_stock < quantity:
                logger.info(
                    "sale_completion_rejected",
                    extra={
                        "sale_id": str(sale.id),
                        "product_id": str(product_id),
                        "requested": quantity,
                        "available": product.current_stock,
                    },
                )
                raise InsufficientStockError(
                    "Product", str(product_id), quantity, product.current_stock
                )

    @staticmethod
    def _quantities_by_product(sale: Sale) -> dict[UUID, Decimal]:
        wanted: dict[UUID, Decimal] = {}
        for item in sale.items:
            if item.product_id is None:
                continue
            wanted[item.product_id] = wanted.get(item.product_id, ZERO) + item.quantity
        return wanted

    @staticmethod
    def _validate_line(line: SaleLine) -> tuple[Decimal, Decimal | None]:
        """Quantity and explicit price at the stored scale."""
        quantity = require_quantity("quantity", line.quantity)
        price = line.price_per_unit
        if price is not None:
            price = require_cost("price_per_unit", price)
        return quantity, price

    def _new_item(self, user_id: UUID, line: SaleLine, position: int) -> SaleItem:
        quantity, price = self._validate_line(line)
        if line.product_id is None:
            price = price if price is not None else ZERO
            cost = ZERO
        else:
            product = self._get_owned(
                Product, user_id, line.product_id, ProductNotFoundError
            )
            price = price if price is not None else product.selling_price
            cost = self.unit_cost(user_id, product)

        return SaleItem(
            product_id=line.product_id,
            description=line.description,
            quantity=quantity,
            price_per_unit=price,
            cost_per_unit_at_sale=cost,
            subtotal=round_cost(quantity * price),
            position=position,
        )

    def unit_cost(self, user_id: UUID, product: Product) -> Decimal:
        """Live per-yield-unit recipe cost of ``product`` (0 without a recipe)."""
        recipe = None
        if product.recipe_id is not None:
            recipe = self.session.get(Recipe, product.recipe_id)
            if recipe is not None and recipe.user_id != user_id:
                recipe = None
        if recipe is None:
            logger.warning(
                "sale_cost_snapshot_without_recipe",
                extra={"product_id": str(product.id)},
            )
            return round_cost(ZERO, self.policy.cost_places)

        material_ids = {line.material_id for line in recipe.lines}
        materials = {}
        if material_ids:
            rows = self.session.execute(
                select(Material).where(
                    Material.user_id == user_id, Material.id.in_(material_ids)
                )
            ).scalars()
            materials = {m.id: m.to_dto() for m in rows}
        return self.calculator.cost(recipe.to_dto(), materials).per_yield_unit
