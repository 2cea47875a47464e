"""
Stock policy -- kernel-side view of the ledger configuration.

The kernel never imports ``costbook_config``; the config package builds a
``StockPolicy`` through ``costbook_config.bridges.build_stock_policy`` and
hands it to the services.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from costbook_kernel.db.types import COST_DECIMAL_PLACES


class NegativeStockPolicy(str, Enum):
    """What happens when an operation would push material stock below zero."""

    ALLOW = "allow"
    REJECT = "reject"


@dataclass(frozen=True)
class StockPolicy:
    """
    Contract:
        ``negative_material_stock`` governs build consumption and purchase
        entry reversal.  Product stock is never allowed below zero,
        regardless of this policy.
    """

    negative_material_stock: NegativeStockPolicy = NegativeStockPolicy.ALLOW
    cost_places: int = COST_DECIMAL_PLACES

    def __post_init__(self) -> None:
        if not 0 <= self.cost_places <= 9:
            raise ValueError(
                f"cost_places must be between 0 and 9, got {self.cost_places}"
            )

    @property
    def rejects_negative_material_stock(self) -> bool:
        return self.negative_material_stock is NegativeStockPolicy.REJECT

    def would_violate(self, current_stock: Decimal, decrement: Decimal) -> bool:
        """True if lowering ``current_stock`` by ``decrement`` breaks the policy."""
        if not self.rejects_negative_material_stock or decrement <= 0:
            return False
        return current_stock - decrement < 0


DEFAULT_STOCK_POLICY = StockPolicy()
