"""
Kernel services.  Every service flushes within the caller's transaction
and never commits.
"""

from costbook_kernel.services.manufacturing import ManufacturingService
from costbook_kernel.services.material import MaterialService
from costbook_kernel.services.product import ProductService
from costbook_kernel.services.purchase_journal import PurchaseJournalService
from costbook_kernel.services.purchase_order import PurchaseOrderService
from costbook_kernel.services.recipe import RecipeService
from costbook_kernel.services.sales import SalesService

__all__ = [
    "MaterialService",
    "PurchaseJournalService",
    "PurchaseOrderService",
    "RecipeService",
    "ProductService",
    "ManufacturingService",
    "SalesService",
]
