"""
Transactional layer over the costbook kernel.

Each CostbookService method is one transaction; kernel services below it
only flush.
"""

from costbook_services.costbook_service import CostbookService

__all__ = ["CostbookService"]
