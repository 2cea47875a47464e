"""
costbook_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  No other component reads configuration files or
    environment variables.

Architecture position:
    Sits above ``costbook_kernel`` and below ``costbook_services``.  The
    kernel MUST NEVER import from here; ``bridges`` translates the policy
    into kernel inputs.

Sources, highest precedence first:
    1. the ``path`` argument,
    2. the ``COSTBOOK_CONFIG`` environment variable,
    3. the packaged ``defaults.yaml``.
    ``DATABASE_URL``, when set, overrides ``database_url`` from any source.

Failure modes:
    - ``FileNotFoundError`` -- the selected file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from costbook_config.bridges import build_stock_policy
from costbook_config.loader import load_policy
from costbook_config.schema import LedgerPolicy

_logger = logging.getLogger("costbook.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: str | Path | None = None) -> LedgerPolicy:
    """The ONLY public configuration entrypoint."""
    if path is not None:
        source = Path(path)
    elif os.environ.get("COSTBOOK_CONFIG"):
        source = Path(os.environ["COSTBOOK_CONFIG"])
    else:
        source = DEFAULTS_PATH

    policy = load_policy(source)

    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        policy = replace(policy, database_url=database_url)

    _logger.info(
        "costbook_config_loaded",
        extra={
            "source": str(source),
            "negative_material_stock": policy.negative_material_stock.value,
            "max_conflict_retries": policy.max_conflict_retries,
            "lock_timeout_ms": policy.lock_timeout_ms,
            "cost_places": policy.cost_places,
        },
    )
    return policy


__all__ = [
    "get_active_config",
    "LedgerPolicy",
    "build_stock_policy",
    "DEFAULTS_PATH",
]
