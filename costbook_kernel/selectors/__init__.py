"""Read-only selectors returning frozen DTOs."""

from costbook_kernel.selectors.material import MaterialSelector
from costbook_kernel.selectors.product import ProductSelector
from costbook_kernel.selectors.purchase import PurchaseSelector
from costbook_kernel.selectors.recipe import RecipeSelector
from costbook_kernel.selectors.report import ReportSelector
from costbook_kernel.selectors.sale import SaleSelector

__all__ = [
    "MaterialSelector",
    "PurchaseSelector",
    "RecipeSelector",
    "ProductSelector",
    "SaleSelector",
    "ReportSelector",
]
