"""
Costbook Kernel

Inventory costing and stock ledger for a small-batch maker business:
- Weighted-average material cost derived purely from purchase history
- Reversible purchase, order, build and sale operations
- Row-locked, all-or-nothing transactions
- Frozen cost snapshots for builds and sales
"""

__version__ = "0.1.0"
