"""
Ledger configuration schema.

``LedgerPolicy`` is the parsed, validated form of the YAML configuration.
It is frozen; the loader is the only thing that builds one from a file.
"""

from __future__ import annotations

from dataclasses import dataclass

from costbook_kernel.domain.policy import NegativeStockPolicy

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LedgerPolicy:
    """Runtime configuration of the costing ledger."""

    negative_material_stock: NegativeStockPolicy = NegativeStockPolicy.ALLOW
    max_conflict_retries: int = 3
    lock_timeout_ms: int | None = None
    cost_places: int = 9
    database_url: str = "sqlite://"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.max_conflict_retries < 0:
            raise ValueError(
                f"max_conflict_retries must be >= 0, got {self.max_conflict_retries}"
            )
        if self.lock_timeout_ms is not None and self.lock_timeout_ms < 0:
            raise ValueError(f"lock_timeout_ms must be >= 0, got {self.lock_timeout_ms}")
        if not 0 <= self.cost_places <= 9:
            raise ValueError(f"cost_places must be between 0 and 9, got {self.cost_places}")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}"
            )
