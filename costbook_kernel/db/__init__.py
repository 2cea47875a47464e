"""Database layer - engine, base classes, types."""

from costbook_kernel.db.base import UUID, Base, OwnedBase, UUIDString
from costbook_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from costbook_kernel.db.types import Money, Quantity, round_cost, to_decimal

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "OwnedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
    "round_cost",
    "to_decimal",
]
