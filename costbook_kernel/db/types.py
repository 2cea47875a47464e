"""
Module: costbook_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for cost and
    quantity columns.  Centralizes precision so every model and service uses
    identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    No floats anywhere in the kernel.  Costs and quantities use Decimal;
    cumulative totals are never rounded (so reversal is exact), only derived
    values (averages, per-unit costs, snapshots) are quantized.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

COST_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP


class ExactDecimal(TypeDecorator):
    """
    Decimal column with 38 digits and 9 decimal places.

    Guarantees:
        - NUMERIC(38, 9) on databases with a native fixed-point type.
        - On SQLite, which only has binary floats, values are stored as
          their quantized decimal text, so every stored value reads back
          exactly as written.
        - process_result_value always yields Decimal.
    """

    impl = Numeric(38, 9)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(Numeric(38, 9, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return str(round_cost(to_decimal(value)))

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, Decimal):
            return value
        return Decimal(str(value))


# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, ExactDecimal()]

# Stock / consumption quantity in crafting units
Quantity = Annotated[Decimal, ExactDecimal()]

# Short identifier strings
ShortText = Annotated[str, String(100)]

# Long text for notes and descriptions
LongText = Annotated[str, String(4000)]

ZERO = Decimal("0")


def to_decimal(value: object) -> Decimal:
    """
    Coerce an int, str or Decimal to Decimal.

    Floats are converted through their shortest repr so that ``0.1`` becomes
    ``Decimal("0.1")`` rather than the binary expansion.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a numeric value: {value!r}") from exc


def round_cost(value: Decimal, places: int = COST_DECIMAL_PLACES) -> Decimal:
    """
    Quantize a derived cost to ``places`` decimal places (ROUND_HALF_UP).

    This is the ONLY sanctioned rounding function for derived costs.
    """
    quantum = Decimal(1).scaleb(-places)
    return value.quantize(quantum, rounding=DEFAULT_ROUNDING)
