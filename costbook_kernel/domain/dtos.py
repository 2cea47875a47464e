"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable inputs accepted by the services (PurchaseLine, OrderHeader,
    MaterialSpec, RecipeSpec, ProductSpec, SaleLine, SaleHeader) and the
    immutable snapshots they return (MaterialSnapshot, PurchaseOrderSnapshot,
    RecipeSnapshot, RecipeCost, BuildSnapshot, SaleSnapshot and the report
    figures).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ORM models convert themselves into snapshots via ``to_dto()``; nothing
    in this module knows about SQLAlchemy.

Invariants enforced:
    - Every DTO is frozen; collections are tuples.
    - Input DTOs coerce numeric fields to Decimal on construction, so
      callers may pass ints or strings.  Range checks (quantity > 0,
      cost >= 0) are done by the services and raise the typed
      ValidationError subclasses, not ValueError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from costbook_kernel.db.types import ZERO, to_decimal


def _coerce(obj: object, *names: str) -> None:
    """Coerce the named attributes of a frozen dataclass to Decimal."""
    for name in names:
        value = getattr(obj, name)
        if value is not None and not isinstance(value, Decimal):
            object.__setattr__(obj, name, to_decimal(value))


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class PurchaseApplyMode(str, Enum):
    """How a journal entry contributes to its material's ledger."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class PurchaseLine:
    """
    One purchase of one material.

    Contract:
        ``total_quantity`` is in crafting units unless ``in_purchase_units``
        is True, in which case the service multiplies it by the material's
        conversion factor before it reaches the ledger.  ``entry_id``
        identifies an existing journal entry when the line is part of an
        order update; it is None for new entries.
    """

    material_id: UUID
    total_quantity: Decimal
    total_cost: Decimal
    purchase_date: date | None = None
    supplier_name: str | None = None
    supplier_contact: str | None = None
    entry_id: UUID | None = None
    in_purchase_units: bool = False

    def __post_init__(self) -> None:
        _coerce(self, "total_quantity", "total_cost")


@dataclass(frozen=True)
class OrderHeader:
    name: str
    purchase_date: date
    status: str = "Pending"
    notes: str | None = None


@dataclass(frozen=True)
class MaterialSpec:
    """
    Descriptive fields of a material.

    ``initial_quantity``/``initial_cost`` form an opening balance and are
    only honoured on create, where they are booked as an ordinary journal
    entry.
    """

    name: str
    purchase_unit: str
    crafting_unit: str
    conversion_factor: Decimal = Decimal("1")
    minimum_threshold: Decimal = ZERO
    sku: str | None = None
    category: str | None = None
    status: str = "active"
    inventoryable: bool = True
    notes: str | None = None
    initial_quantity: Decimal | None = None
    initial_cost: Decimal | None = None

    def __post_init__(self) -> None:
        _coerce(
            self,
            "conversion_factor",
            "minimum_threshold",
            "initial_quantity",
            "initial_cost",
        )


@dataclass(frozen=True)
class RecipeLine:
    """``line_id`` is set when the line already exists (recipe update)."""

    material_id: UUID
    quantity: Decimal
    details: str | None = None
    line_id: UUID | None = None

    def __post_init__(self) -> None:
        _coerce(self, "quantity")


@dataclass(frozen=True)
class RecipeSpec:
    name: str
    yield_quantity: Decimal
    yield_unit: str | None = None
    notes: str | None = None
    lines: tuple[RecipeLine, ...] = ()

    def __post_init__(self) -> None:
        _coerce(self, "yield_quantity")
        object.__setattr__(self, "lines", tuple(self.lines))


@dataclass(frozen=True)
class ProductSpec:
    name: str
    recipe_id: UUID | None = None
    selling_price: Decimal = ZERO
    sku: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        _coerce(self, "selling_price")


@dataclass(frozen=True)
class SaleLine:
    """
    One sale line.

    Contract:
        ``product_id`` None means a free-text line (a service or custom
        charge): cost 0, no stock effect.  ``price_per_unit`` None means
        "use the product's selling price".  ``item_id`` identifies an
        existing item when the line is part of a draft update.
    """

    quantity: Decimal
    product_id: UUID | None = None
    price_per_unit: Decimal | None = None
    description: str | None = None
    item_id: UUID | None = None

    def __post_init__(self) -> None:
        _coerce(self, "quantity", "price_per_unit")


@dataclass(frozen=True)
class SaleHeader:
    sale_date: date | None = None
    customer_details: str | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MaterialSnapshot:
    id: UUID
    name: str
    purchase_unit: str
    crafting_unit: str
    conversion_factor: Decimal
    total_quantity: Decimal
    total_cost: Decimal
    avg_cost: Decimal
    current_stock: Decimal
    minimum_threshold: Decimal
    sku: str | None = None
    category: str | None = None
    status: str = "active"
    inventoryable: bool = True
    notes: str | None = None
    version: int = 1

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.minimum_threshold


@dataclass(frozen=True)
class PurchaseEntrySnapshot:
    id: UUID
    material_id: UUID
    purchase_id: UUID | None
    purchase_date: date
    total_cost: Decimal
    total_quantity: Decimal
    avg_cost: Decimal
    supplier_name: str | None = None
    supplier_contact: str | None = None


@dataclass(frozen=True)
class PurchaseOrderSnapshot:
    """Order header with its entries and derived totals."""

    id: UUID
    name: str
    purchase_date: date
    status: str
    notes: str | None
    entries: tuple[PurchaseEntrySnapshot, ...] = ()

    @property
    def total_cost(self) -> Decimal:
        return sum((e.total_cost for e in self.entries), ZERO)

    @property
    def total_items(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class RecipeLineSnapshot:
    id: UUID
    material_id: UUID
    quantity: Decimal
    details: str | None = None


@dataclass(frozen=True)
class RecipeSnapshot:
    id: UUID
    name: str
    yield_quantity: Decimal
    yield_unit: str | None = None
    notes: str | None = None
    lines: tuple[RecipeLineSnapshot, ...] = ()


@dataclass(frozen=True)
class RecipeCostLine:
    """
    Cost contribution of one recipe line.

    ``missing`` marks a line whose material no longer exists; such a line
    contributes zero.
    """

    material_id: UUID
    quantity: Decimal
    unit_cost: Decimal
    line_cost: Decimal
    missing: bool = False


@dataclass(frozen=True)
class RecipeCost:
    recipe_id: UUID
    total: Decimal
    per_yield_unit: Decimal
    lines: tuple[RecipeCostLine, ...] = ()

    @property
    def missing_material_ids(self) -> tuple[UUID, ...]:
        return tuple(line.material_id for line in self.lines if line.missing)

    @property
    def is_complete(self) -> bool:
        return not self.missing_material_ids


@dataclass(frozen=True)
class ProductSnapshot:
    id: UUID
    name: str
    recipe_id: UUID | None
    selling_price: Decimal
    current_stock: Decimal
    sku: str | None = None
    notes: str | None = None
    version: int = 1


@dataclass(frozen=True)
class BuildLineSnapshot:
    material_id: UUID
    quantity_consumed: Decimal
    unit_cost_at_build: Decimal
    line_cost: Decimal


@dataclass(frozen=True)
class BuildSnapshot:
    id: UUID
    product_id: UUID
    recipe_id: UUID
    quantity_built: Decimal
    total_cost_at_build: Decimal
    built_at: datetime
    notes: str | None = None
    lines: tuple[BuildLineSnapshot, ...] = ()

    @property
    def cost_per_unit(self) -> Decimal:
        if self.quantity_built <= 0:
            return ZERO
        return self.total_cost_at_build / self.quantity_built


@dataclass(frozen=True)
class SaleItemSnapshot:
    id: UUID
    product_id: UUID | None
    quantity: Decimal
    price_per_unit: Decimal
    cost_per_unit_at_sale: Decimal
    subtotal: Decimal
    description: str | None = None


@dataclass(frozen=True)
class SaleSnapshot:
    id: UUID
    status: str
    sale_date: date
    total_amount: Decimal
    customer_details: str | None = None
    notes: str | None = None
    items: tuple[SaleItemSnapshot, ...] = ()

    @property
    def cost_of_goods(self) -> Decimal:
        return sum(
            (i.quantity * i.cost_per_unit_at_sale for i in self.items), ZERO
        )


# ---------------------------------------------------------------------------
# Report figures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InventoryValuation:
    materials_value: Decimal
    products_value: Decimal
    low_stock_count: int = 0

    @property
    def total_value(self) -> Decimal:
        return self.materials_value + self.products_value


@dataclass(frozen=True)
class SalesSummary:
    """Completed sales between ``start`` and ``end`` inclusive."""

    start: date
    end: date
    sale_count: int
    revenue: Decimal
    cost_of_goods: Decimal
    # (product_id, units_sold, revenue); product_id None for free-text lines
    by_product: tuple[tuple[UUID | None, Decimal, Decimal], ...] = field(
        default_factory=tuple
    )

    @property
    def gross_profit(self) -> Decimal:
        return self.revenue - self.cost_of_goods

    @property
    def gross_margin(self) -> Decimal:
        if self.revenue == 0:
            return ZERO
        return self.gross_profit / self.revenue


@dataclass(frozen=True)
class ManufacturingSummary:
    start: date
    end: date
    batch_count: int
    units_built: Decimal
    total_cost: Decimal
