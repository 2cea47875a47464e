"""
Configuration loader (``costbook_config.loader``).

Responsibility
--------------
Reads a YAML file and parses it into a ``LedgerPolicy``.  Runtime callers
go through ``costbook_config.get_active_config()``; this module is its
implementation and test tooling.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key, wrong type or invalid value  -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from costbook_config.schema import LedgerPolicy
from costbook_kernel.domain.policy import NegativeStockPolicy

_INT_FIELDS = ("max_conflict_retries", "cost_places")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields ``{}``."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value


def parse_policy(data: dict[str, Any]) -> LedgerPolicy:
    """
    Build a LedgerPolicy from a mapping.  Keys absent from ``data`` keep
    their defaults.
    """
    known = {f.name for f in fields(LedgerPolicy)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown configuration key(s): {', '.join(unknown)}")

    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key == "negative_material_stock":
            try:
                kwargs[key] = NegativeStockPolicy(str(value).lower())
            except ValueError:
                allowed = ", ".join(p.value for p in NegativeStockPolicy)
                raise ValueError(
                    f"negative_material_stock must be one of {allowed}, got {value!r}"
                ) from None
        elif key in _INT_FIELDS:
            kwargs[key] = _as_int(key, value)
        elif key == "lock_timeout_ms":
            kwargs[key] = None if value is None else _as_int(key, value)
        elif key == "log_level":
            kwargs[key] = str(value).upper()
        else:
            kwargs[key] = str(value)
    return LedgerPolicy(**kwargs)


def load_policy(path: Path) -> LedgerPolicy:
    return parse_policy(load_yaml_file(path))
