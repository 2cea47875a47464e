"""
Costbook ORM models.

Importing this package registers every table on ``Base.metadata``;
``create_tables()`` relies on that.
"""

from costbook_kernel.models.material import Material
from costbook_kernel.models.product import Product, ProductBuild, ProductBuildLine
from costbook_kernel.models.purchase import (
    PurchaseJournalEntry,
    PurchaseOrder,
    PurchaseOrderStatus,
)
from costbook_kernel.models.recipe import Recipe, RecipeMaterial
from costbook_kernel.models.sale import Sale, SaleItem, SaleStatus

__all__ = [
    "Material",
    "PurchaseOrder",
    "PurchaseOrderStatus",
    "PurchaseJournalEntry",
    "Recipe",
    "RecipeMaterial",
    "Product",
    "ProductBuild",
    "ProductBuildLine",
    "Sale",
    "SaleItem",
    "SaleStatus",
]
