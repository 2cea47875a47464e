"""
Ledger arithmetic -- weighted-average cost and stock movements.

Responsibility:
    Pure functions over a material's running totals.  Every purchase
    journal mutation is expressed as "remove old contribution, add new
    contribution"; consumption only moves stock.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by
    PurchaseJournalService and ManufacturingService with values read
    from locked rows.

Invariants enforced:
    - Totals are never rounded, so add followed by remove of the same
      entry restores them exactly.
    - avg_cost is derived from totals only (never from consumption) and
      is 0 when total_quantity is 0.
    - Update is the same arithmetic as remove-then-add.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from costbook_kernel.db.types import COST_DECIMAL_PLACES, ZERO, round_cost
from costbook_kernel.exceptions import InvalidCostError, InvalidQuantityError


def weighted_average(
    total_cost: Decimal,
    total_quantity: Decimal,
    places: int = COST_DECIMAL_PLACES,
) -> Decimal:
    """total_cost / total_quantity, or 0 when nothing has been purchased."""
    if total_quantity <= 0:
        return round_cost(ZERO, places)
    return round_cost(total_cost / total_quantity, places)


def _at_column_scale(field: str, value: Decimal, error: type) -> Decimal:
    """``value`` at the stored scale; NaN, infinities and overflow raise ``error``."""
    if not value.is_finite():
        raise error(field, value)
    try:
        return round_cost(value, COST_DECIMAL_PLACES)
    except InvalidOperation:
        raise error(field, value) from None


def require_quantity(field: str, value: Decimal) -> Decimal:
    """
    Return ``value`` as it will be stored, rejecting anything not > 0 there.

    A quantity that only becomes zero once quantized (e.g. 1E-10) is
    rejected as well.
    """
    stored = _at_column_scale(field, value, InvalidQuantityError)
    if stored <= 0:
        raise InvalidQuantityError(field, value)
    return stored


def require_cost(field: str, value: Decimal) -> Decimal:
    """Return ``value`` as it will be stored, rejecting anything negative."""
    stored = _at_column_scale(field, value, InvalidCostError)
    if stored < 0:
        raise InvalidCostError(field, value)
    return stored


def validate_entry(quantity: Decimal, cost: Decimal) -> tuple[Decimal, Decimal]:
    """
    Reject an entry before it touches any ledger.

    Returns:
        (quantity, cost) at the stored scale.  Callers book these values,
        never the raw input, so what is returned equals what is persisted.

    Raises:
        InvalidQuantityError: quantity <= 0 at the stored scale, or not finite.
        InvalidCostError: cost < 0, or not finite.
    """
    return (
        require_quantity("total_quantity", quantity),
        require_cost("total_cost", cost),
    )


@dataclass(frozen=True)
class MaterialTotals:
    """Running totals of one material."""

    total_quantity: Decimal
    total_cost: Decimal
    current_stock: Decimal

    @classmethod
    def zero(cls) -> MaterialTotals:
        return cls(ZERO, ZERO, ZERO)

    def add_entry(self, quantity: Decimal, cost: Decimal) -> MaterialTotals:
        return MaterialTotals(
            total_quantity=self.total_quantity + quantity,
            total_cost=self.total_cost + cost,
            current_stock=self.current_stock + quantity,
        )

    def remove_entry(self, quantity: Decimal, cost: Decimal) -> MaterialTotals:
        return MaterialTotals(
            total_quantity=self.total_quantity - quantity,
            total_cost=self.total_cost - cost,
            current_stock=self.current_stock - quantity,
        )

    def replace_entry(
        self,
        old_quantity: Decimal,
        old_cost: Decimal,
        new_quantity: Decimal,
        new_cost: Decimal,
    ) -> MaterialTotals:
        return self.remove_entry(old_quantity, old_cost).add_entry(
            new_quantity, new_cost
        )

    def consume(self, quantity: Decimal) -> MaterialTotals:
        return MaterialTotals(
            self.total_quantity, self.total_cost, self.current_stock - quantity
        )

    def restore(self, quantity: Decimal) -> MaterialTotals:
        return MaterialTotals(
            self.total_quantity, self.total_cost, self.current_stock + quantity
        )

    def average_cost(self, places: int = COST_DECIMAL_PLACES) -> Decimal:
        return weighted_average(self.total_cost, self.total_quantity, places)
