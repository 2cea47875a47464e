"""
costbook_services.costbook_service -- in-process API of the costing ledger.

Responsibility:
    One method per ledger operation.  Each call:
      1. checks the subscription gate,
      2. binds log context (correlation id, actor, operation, entity),
      3. opens its own transaction via ``session_scope``,
      4. runs the kernel services (flush-only) and converts the result to
         a frozen DTO before the session closes,
      5. commits, or rolls back and maps the failure onto the kernel error
         taxonomy,
      6. retries the whole operation on ConflictError, up to
         ``max_conflict_retries`` times.

Architecture position:
    Services -- the only layer that owns transactions and the only place
    kernel services are constructed.  Imports costbook_kernel and
    costbook_config; neither imports this package.

Invariants enforced:
    - Nothing commits partially: every operation is one transaction.
    - Driver-level causes (lock contention, connection failures) are
      logged here and never appear in the surfaced error.
    - A caller-supplied ``timeout_ms`` aborts the transaction.  On
      PostgreSQL it also becomes ``SET LOCAL statement_timeout``.

Usage:
    service = CostbookService.from_config()
    material = service.create_material(user_id, MaterialSpec(...))
    service.apply_purchase(user_id, PurchaseApplyMode.CREATE, line=PurchaseLine(...))
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import IntegrityError as SAIntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from costbook_config import LedgerPolicy, build_stock_policy, get_active_config
from costbook_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from costbook_kernel.domain.clock import Clock, SystemClock
from costbook_kernel.domain.dtos import (
    BuildSnapshot,
    InventoryValuation,
    ManufacturingSummary,
    MaterialSnapshot,
    MaterialSpec,
    OrderHeader,
    ProductSnapshot,
    ProductSpec,
    PurchaseApplyMode,
    PurchaseEntrySnapshot,
    PurchaseLine,
    PurchaseOrderSnapshot,
    RecipeCost,
    RecipeSnapshot,
    RecipeSpec,
    SaleHeader,
    SaleLine,
    SalesSummary,
    SaleSnapshot,
)
from costbook_kernel.exceptions import (
    ConflictError,
    IntegrityError,
    LockConflictError,
    OperationTimeoutError,
    OptimisticLockError,
    StorageUnavailableError,
    SubscriptionInactiveError,
)
from costbook_kernel.logging_config import LogContext, configure_logging, get_logger
from costbook_kernel.selectors import (
    MaterialSelector,
    ProductSelector,
    PurchaseSelector,
    RecipeSelector,
    ReportSelector,
    SaleSelector,
)
from costbook_kernel.services import (
    ManufacturingService,
    MaterialService,
    ProductService,
    PurchaseJournalService,
    PurchaseOrderService,
    RecipeService,
    SalesService,
)

logger = get_logger("services.costbook")

T = TypeVar("T")

# PostgreSQL SQLSTATEs that mean "lost a lock race, try again"
_LOCK_CONFLICT_SQLSTATES = frozenset({"40P01", "55P03", "40001"})
_QUERY_CANCELED_SQLSTATE = "57014"


class CostbookService:
    """
    Contract:
        Every public method takes the authenticated ``user_id`` first and
        returns a frozen snapshot (or None for deletes), or raises a
        ``CostbookError`` subclass.

    Guarantees:
        - ``subscription_active(user_id)`` returning False raises
          SubscriptionInactiveError before any transaction is opened.
        - ConflictError is raised only after the configured retries are exhausted.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        config: LedgerPolicy | None = None,
        clock: Clock | None = None,
        subscription_active: Callable[[UUID], bool] | None = None,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._config = config or LedgerPolicy()
        self._policy = build_stock_policy(self._config)
        self._clock = clock or SystemClock()
        self._subscription_active = subscription_active

    @classmethod
    def from_config(
        cls,
        path: str | Path | None = None,
        *,
        create_schema: bool = False,
        clock: Clock | None = None,
        subscription_active: Callable[[UUID], bool] | None = None,
    ) -> CostbookService:
        """Load configuration, set up logging and the engine, build the service."""
        config = get_active_config(path)
        configure_logging(level=config.log_level)
        init_engine_from_url(config.database_url)
        if create_schema:
            create_tables()
        return cls(
            get_session_factory(),
            config=config,
            clock=clock,
            subscription_active=subscription_active,
        )

    @property
    def config(self) -> LedgerPolicy:
        return self._config

    # ==================================================================
    # Materials
    # ==================================================================

    def create_material(self, user_id: UUID, spec: MaterialSpec) -> MaterialSnapshot:
        def work(session: Session) -> MaterialSnapshot:
            material = MaterialService(session, self._policy, self._clock).create(
                user_id, spec
            )
            return material.to_dto()

        return self._run("create_material", user_id, work)

    def update_material(
        self, user_id: UUID, material_id: UUID, spec: MaterialSpec
    ) -> MaterialSnapshot:
        def work(session: Session) -> MaterialSnapshot:
            service = MaterialService(session, self._policy, self._clock)
            return service.update(user_id, material_id, spec).to_dto()

        return self._run("update_material", user_id, work, entity_id=material_id)

    def delete_material(self, user_id: UUID, material_id: UUID) -> None:
        def work(session: Session) -> None:
            MaterialService(session, self._policy, self._clock).delete(
                user_id, material_id
            )

        self._run("delete_material", user_id, work, entity_id=material_id)

    def get_material(self, user_id: UUID, material_id: UUID) -> MaterialSnapshot:
        return self._run(
            "get_material",
            user_id,
            lambda s: MaterialSelector(s).require(user_id, material_id),
            entity_id=material_id,
        )

    def list_materials(self, user_id: UUID) -> list[MaterialSnapshot]:
        return self._run(
            "list_materials", user_id, lambda s: MaterialSelector(s).list_materials(user_id)
        )

    def low_stock_materials(self, user_id: UUID) -> list[MaterialSnapshot]:
        return self._run(
            "low_stock_materials", user_id, lambda s: MaterialSelector(s).low_stock(user_id)
        )

    def purchase_entries(
        self, user_id: UUID, material_id: UUID | None = None
    ) -> list[PurchaseEntrySnapshot]:
        return self._run(
            "purchase_entries",
            user_id,
            lambda s: MaterialSelector(s).entries(user_id, material_id),
            entity_id=material_id,
        )

    # ==================================================================
    # Purchases
    # ==================================================================

    def apply_purchase(
        self,
        user_id: UUID,
        mode: PurchaseApplyMode | str,
        *,
        line: PurchaseLine | None = None,
        entry_id: UUID | None = None,
        timeout_ms: int | None = None,
    ) -> PurchaseEntrySnapshot | None:
        """Create, update or delete one standalone purchase journal entry."""

        def work(session: Session) -> PurchaseEntrySnapshot | None:
            service = PurchaseJournalService(session, self._policy, self._clock)
            entry = service.apply(user_id, mode, line=line, entry_id=entry_id)
            return entry.to_dto() if entry is not None else None

        return self._run(
            "apply_purchase", user_id, work, entity_id=entry_id, timeout_ms=timeout_ms
        )

    def create_order(
        self,
        user_id: UUID,
        header: OrderHeader,
        lines: list[PurchaseLine] | tuple[PurchaseLine, ...],
        *,
        timeout_ms: int | None = None,
    ) -> PurchaseOrderSnapshot:
        def work(session: Session) -> PurchaseOrderSnapshot:
            order = PurchaseOrderService(
                session, self._policy, self._clock
            ).create_with_items(user_id, header, lines)
            return PurchaseSelector(session).order(user_id, order.id)

        return self._run("create_order", user_id, work, timeout_ms=timeout_ms)

    def update_order(
        self,
        user_id: UUID,
        order_id: UUID,
        header: OrderHeader,
        lines: list[PurchaseLine] | tuple[PurchaseLine, ...],
        *,
        timeout_ms: int | None = None,
    ) -> PurchaseOrderSnapshot:
        def work(session: Session) -> PurchaseOrderSnapshot:
            PurchaseOrderService(session, self._policy, self._clock).update_with_items(
                user_id, order_id, header, lines
            )
            return PurchaseSelector(session).order(user_id, order_id)

        return self._run(
            "update_order", user_id, work, entity_id=order_id, timeout_ms=timeout_ms
        )

    def delete_order(
        self, user_id: UUID, order_id: UUID, *, timeout_ms: int | None = None
    ) -> None:
        def work(session: Session) -> None:
            PurchaseOrderService(session, self._policy, self._clock).delete(
                user_id, order_id
            )

        self._run(
            "delete_order", user_id, work, entity_id=order_id, timeout_ms=timeout_ms
        )

    def get_order(self, user_id: UUID, order_id: UUID) -> PurchaseOrderSnapshot:
        return self._run(
            "get_order",
            user_id,
            lambda s: PurchaseSelector(s).order(user_id, order_id),
            entity_id=order_id,
        )

    def list_orders(self, user_id: UUID) -> list[PurchaseOrderSnapshot]:
        return self._run(
            "list_orders", user_id, lambda s: PurchaseSelector(s).orders(user_id)
        )

    # ==================================================================
    # Recipes
    # ==================================================================

    def create_recipe(self, user_id: UUID, spec: RecipeSpec) -> RecipeSnapshot:
        def work(session: Session) -> RecipeSnapshot:
            return RecipeService(session, self._policy, self._clock).create(
                user_id, spec
            ).to_dto()

        return self._run("create_recipe", user_id, work)

    def update_recipe(
        self, user_id: UUID, recipe_id: UUID, spec: RecipeSpec
    ) -> RecipeSnapshot:
        def work(session: Session) -> RecipeSnapshot:
            return RecipeService(session, self._policy, self._clock).update(
                user_id, recipe_id, spec
            ).to_dto()

        return self._run("update_recipe", user_id, work, entity_id=recipe_id)

    def delete_recipe(self, user_id: UUID, recipe_id: UUID) -> None:
        def work(session: Session) -> None:
            RecipeService(session, self._policy, self._clock).delete(user_id, recipe_id)

        self._run("delete_recipe", user_id, work, entity_id=recipe_id)

    def get_recipe(self, user_id: UUID, recipe_id: UUID) -> RecipeSnapshot:
        return self._run(
            "get_recipe",
            user_id,
            lambda s: RecipeSelector(s, self._policy.cost_places).require(
                user_id, recipe_id
            ),
            entity_id=recipe_id,
        )

    def list_recipes(self, user_id: UUID) -> list[RecipeSnapshot]:
        return self._run(
            "list_recipes",
            user_id,
            lambda s: RecipeSelector(s, self._policy.cost_places).list_recipes(user_id),
        )

    def compute_recipe_cost(self, user_id: UUID, recipe_id: UUID) -> RecipeCost:
        """Live total and per-yield-unit cost.  Read-only."""
        return self._run(
            "compute_recipe_cost",
            user_id,
            lambda s: RecipeSelector(s, self._policy.cost_places).cost(user_id, recipe_id),
            entity_id=recipe_id,
        )

    # ==================================================================
    # Products
    # ==================================================================

    def create_product(self, user_id: UUID, spec: ProductSpec) -> ProductSnapshot:
        def work(session: Session) -> ProductSnapshot:
            return ProductService(session, self._policy, self._clock).create(
                user_id, spec
            ).to_dto()

        return self._run("create_product", user_id, work)

    def update_product(
        self, user_id: UUID, product_id: UUID, spec: ProductSpec
    ) -> ProductSnapshot:
        def work(session: Session) -> ProductSnapshot:
            return ProductService(session, self._policy, self._clock).update(
                user_id, product_id, spec
            ).to_dto()

        return self._run("update_product", user_id, work, entity_id=product_id)

    def delete_product(self, user_id: UUID, product_id: UUID) -> None:
        def work(session: Session) -> None:
            ProductService(session, self._policy, self._clock).delete(user_id, product_id)

        self._run("delete_product", user_id, work, entity_id=product_id)

    def get_product(self, user_id: UUID, product_id: UUID) -> ProductSnapshot:
        return self._run(
            "get_product",
            user_id,
            lambda s: ProductSelector(s).require(user_id, product_id),
            entity_id=product_id,
        )

    def list_products(self, user_id: UUID) -> list[ProductSnapshot]:
        return self._run(
            "list_products", user_id, lambda s: ProductSelector(s).list_products(user_id)
        )

    def compute_product_cost(self, user_id: UUID, product_id: UUID) -> RecipeCost | None:
        """Live recipe cost of a product; None when it has no (existing) recipe."""

        def work(session: Session) -> RecipeCost | None:
            product = ProductSelector(session).require(user_id, product_id)
            if product.recipe_id is None:
                return None
            recipes = RecipeSelector(session, self._policy.cost_places)
            recipe = recipes.get(user_id, product.recipe_id)
            if recipe is None:
                return None
            return recipes.cost_of(user_id, recipe)

        return self._run("compute_product_cost", user_id, work, entity_id=product_id)

    # ==================================================================
    # Manufacturing
    # ==================================================================

    def build(
        self,
        user_id: UUID,
        product_id: UUID,
        quantity: Decimal | int | str,
        notes: str | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> BuildSnapshot:
        def work(session: Session) -> BuildSnapshot:
            build = ManufacturingService(session, self._policy, self._clock).build(
                user_id, product_id, quantity, notes
            )
            return build.to_dto()

        return self._run(
            "build", user_id, work, entity_id=product_id, timeout_ms=timeout_ms
        )

    def delete_build(
        self, user_id: UUID, build_id: UUID, *, timeout_ms: int | None = None
    ) -> None:
        def work(session: Session) -> None:
            ManufacturingService(session, self._policy, self._clock).delete_build(
                user_id, build_id
            )

        self._run(
            "delete_build", user_id, work, entity_id=build_id, timeout_ms=timeout_ms
        )

    def list_builds(
        self, user_id: UUID, product_id: UUID | None = None
    ) -> list[BuildSnapshot]:
        return self._run(
            "list_builds",
            user_id,
            lambda s: ProductSelector(s).builds(user_id, product_id),
            entity_id=product_id,
        )

    # ==================================================================
    # Sales
    # ==================================================================

    def create_sale(
        self,
        user_id: UUID,
        header: SaleHeader,
        lines: list[SaleLine] | tuple[SaleLine, ...],
        *,
        complete: bool = False,
        timeout_ms: int | None = None,
    ) -> SaleSnapshot:
        """Record a draft, or with ``complete=True`` a completed sale in one step."""

        def work(session: Session) -> SaleSnapshot:
            service = SalesService(session, self._policy, self._clock)
            if complete:
                sale = service.create_and_complete(user_id, header, lines)
            else:
                sale = service.create_draft(user_id, header, lines)
            return sale.to_dto()

        return self._run("create_sale", user_id, work, timeout_ms=timeout_ms)

    def create_and_complete_sale(
        self,
        user_id: UUID,
        header: SaleHeader,
        lines: list[SaleLine] | tuple[SaleLine, ...],
        *,
        timeout_ms: int | None = None,
    ) -> SaleSnapshot:
        return self.create_sale(
            user_id, header, lines, complete=True, timeout_ms=timeout_ms
        )

    def update_sale_draft(
        self,
        user_id: UUID,
        sale_id: UUID,
        header: SaleHeader,
        lines: list[SaleLine] | tuple[SaleLine, ...],
    ) -> SaleSnapshot:
        def work(session: Session) -> SaleSnapshot:
            service = SalesService(session, self._policy, self._clock)
            return service.update_draft(user_id, sale_id, header, lines).to_dto()

        return self._run("update_sale_draft", user_id, work, entity_id=sale_id)

    def complete_sale(
        self, user_id: UUID, sale_id: UUID, *, timeout_ms: int | None = None
    ) -> SaleSnapshot:
        def work(session: Session) -> SaleSnapshot:
            service = SalesService(session, self._policy, self._clock)
            return service.complete(user_id, sale_id).to_dto()

        return self._run(
            "complete_sale", user_id, work, entity_id=sale_id, timeout_ms=timeout_ms
        )

    def revert_sale(
        self,
        user_id: UUID,
        sale_id: UUID,
        new_status: str = "Draft",
        *,
        timeout_ms: int | None = None,
    ) -> SaleSnapshot:
        def work(session: Session) -> SaleSnapshot:
            service = SalesService(session, self._policy, self._clock)
            return service.revert(user_id, sale_id, new_status).to_dto()

        return self._run(
            "revert_sale", user_id, work, entity_id=sale_id, timeout_ms=timeout_ms
        )

    def cancel_sale(self, user_id: UUID, sale_id: UUID) -> SaleSnapshot:
        def work(session: Session) -> SaleSnapshot:
            service = SalesService(session, self._policy, self._clock)
            return service.cancel(user_id, sale_id).to_dto()

        return self._run("cancel_sale", user_id, work, entity_id=sale_id)

    def delete_sale(self, user_id: UUID, sale_id: UUID) -> None:
        def work(session: Session) -> None:
            SalesService(session, self._policy, self._clock).delete(user_id, sale_id)

        self._run("delete_sale", user_id, work, entity_id=sale_id)

    def get_sale(self, user_id: UUID, sale_id: UUID) -> SaleSnapshot:
        return self._run(
            "get_sale",
            user_id,
            lambda s: SaleSelector(s).get(user_id, sale_id),
            entity_id=sale_id,
        )

    def list_sales(self, user_id: UUID, status: str | None = None) -> list[SaleSnapshot]:
        return self._run(
            "list_sales", user_id, lambda s: SaleSelector(s).list_sales(user_id, status)
        )

    # ==================================================================
    # Reports
    # ==================================================================

    def inventory_valuation(self, user_id: UUID) -> InventoryValuation:
        return self._run(
            "inventory_valuation",
            user_id,
            lambda s: ReportSelector(s, self._policy.cost_places).inventory_valuation(
                user_id
            ),
        )

    def sales_summary(self, user_id: UUID, start: date, end: date) -> SalesSummary:
        return self._run(
            "sales_summary",
            user_id,
            lambda s: ReportSelector(s, self._policy.cost_places).sales_summary(
                user_id, start, end
            ),
        )

    def manufacturing_summary(
        self, user_id: UUID, start: date, end: date
    ) -> ManufacturingSummary:
        return self._run(
            "manufacturing_summary",
            user_id,
            lambda s: ReportSelector(
                s, self._policy.cost_places
            ).manufacturing_summary(user_id, start, end),
        )

    # ==================================================================
    # Transaction runner
    # ==================================================================

    def _run(
        self,
        operation: str,
        user_id: UUID,
        work: Callable[[Session], T],
        *,
        entity_id: UUID | None = None,
        timeout_ms: int | None = None,
    ) -> T:
        if self._subscription_active is not None and not self._subscription_active(
            user_id
        ):
            logger.info(
                "operation_rejected_subscription_inactive",
                extra={"operation_name": operation, "user_id": str(user_id)},
            )
            raise SubscriptionInactiveError(str(user_id))

        if timeout_ms is not None and (
            isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0
        ):
            raise ValueError(f"timeout_ms must be a positive integer, got {timeout_ms!r}")

        attempts = self._config.max_conflict_retries + 1
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(user_id),
            operation=operation,
            entity_id=str(entity_id) if entity_id is not None else None,
        ):
            for attempt in range(1, attempts + 1):
                try:
                    return self._attempt(operation, work, entity_id, timeout_ms)
                except ConflictError as exc:
                    if attempt >= attempts:
                        logger.error(
                            "operation_conflict_exhausted",
                            extra={"attempts": attempt, "error_code": exc.code},
                        )
                        raise
                    logger.warning(
                        "operation_conflict_retry",
                        extra={"attempt": attempt, "error_code": exc.code},
                    )
        raise AssertionError("unreachable")  # pragma: no cover

    def _attempt(
        self,
        operation: str,
        work: Callable[[Session], T],
        entity_id: UUID | None,
        timeout_ms: int | None,
    ) -> T:
        started = time.monotonic()
        try:
            with session_scope(self._session_factory) as session:
                self._apply_timeouts(session, timeout_ms)
                result = work(session)
                session.flush()
                if timeout_ms is not None:
                    elapsed_ms = (time.monotonic() - started) * 1000
                    if elapsed_ms > timeout_ms:
                        raise OperationTimeoutError(operation, timeout_ms)
                return result
        except StaleDataError:
            logger.warning("optimistic_lock_conflict", exc_info=True)
            raise OptimisticLockError(
                "row", str(entity_id) if entity_id is not None else "unknown"
            ) from None
        except SAIntegrityError:
            logger.error("constraint_violation", exc_info=True)
            raise IntegrityError(
                f"Constraint violation during {operation}"
            ) from None
        except OperationalError as exc:
            sqlstate = _sqlstate(exc)
            if sqlstate in _LOCK_CONFLICT_SQLSTATES or _is_sqlite_busy(exc):
                logger.warning(
                    "lock_conflict", extra={"sqlstate": sqlstate}, exc_info=True
                )
                raise LockConflictError(operation) from None
            if sqlstate == _QUERY_CANCELED_SQLSTATE and timeout_ms is not None:
                logger.warning("operation_timed_out", extra={"timeout_ms": timeout_ms})
                raise OperationTimeoutError(operation, timeout_ms) from None
            logger.error(
                "storage_unavailable", extra={"sqlstate": sqlstate}, exc_info=True
            )
            raise StorageUnavailableError(operation) from None
        except DBAPIError as exc:
            logger.error(
                "storage_unavailable", extra={"sqlstate": _sqlstate(exc)}, exc_info=True
            )
            raise StorageUnavailableError(operation) from None

    def _apply_timeouts(self, session: Session, timeout_ms: int | None) -> None:
        if session.get_bind().dialect.name != "postgresql":
            return
        # SET does not take bind parameters; both values are validated ints
        if self._config.lock_timeout_ms is not None:
            session.execute(
                text(f"SET LOCAL lock_timeout = {int(self._config.lock_timeout_ms)}")
            )
        if timeout_ms is not None:
            session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


def _sqlstate(exc: DBAPIError) -> str | None:
    return getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)


def _is_sqlite_busy(exc: OperationalError) -> bool:
    return "database is locked" in str(exc.orig).lower()


__all__ = ["CostbookService"]