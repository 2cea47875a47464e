"""
Pure domain core: DTOs, ledger arithmetic, recipe costing, the sale state
machine, the clock and the stock policy.  Nothing here performs I/O.
"""

from costbook_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from costbook_kernel.domain.ledger_math import MaterialTotals, weighted_average
from costbook_kernel.domain.policy import (
    DEFAULT_STOCK_POLICY,
    NegativeStockPolicy,
    StockPolicy,
)
from costbook_kernel.domain.recipe_cost import BuildPlan, RecipeCostCalculator
from costbook_kernel.domain.sale_workflow import SALE_WORKFLOW

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "MaterialTotals",
    "weighted_average",
    "NegativeStockPolicy",
    "StockPolicy",
    "DEFAULT_STOCK_POLICY",
    "RecipeCostCalculator",
    "BuildPlan",
    "SALE_WORKFLOW",
]
