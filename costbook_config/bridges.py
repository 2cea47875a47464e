"""
Config -> kernel bridges.

The kernel never imports costbook_config; these functions translate a
``LedgerPolicy`` into the kernel's own inputs.
"""

from costbook_config.schema import LedgerPolicy
from costbook_kernel.domain.policy import StockPolicy


def build_stock_policy(config: LedgerPolicy) -> StockPolicy:
    return StockPolicy(
        negative_material_stock=config.negative_material_stock,
        cost_places=config.cost_places,
    )
