"""
Module: inventory_kernel.db.types
Responsibility: Column types and rounding helpers for stock quantities and
    costs.  Centralizes precision so every model and service uses identical
    definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the ledger.  Quantities and costs are Decimal
      with explicit precision.
    - DecimalQuantity stores NUMERIC(38, 9) on PostgreSQL and an exact
      decimal string on SQLite (whose NUMERIC affinity would round-trip
      through binary floating point).

Failure modes:
    - InvalidOperation from Decimal on a malformed stored string.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

QUANTITY_DECIMAL_PLACES = 9
COST_DECIMAL_PLACES = 6
DEFAULT_ROUNDING = ROUND_HALF_UP


class DecimalQuantity(TypeDecorator):
    """Exact decimal column, Numeric(38, 9) where the backend supports it."""

    impl = Numeric(38, QUANTITY_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(
            Numeric(38, QUANTITY_DECIMAL_PLACES, asdecimal=True)
        )

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = Decimal(value)
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


def to_decimal(value) -> Decimal:
    """Convert int/str/Decimal to Decimal. Floats are rejected."""
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Quantities must be Decimal, int or str, not {type(value).__name__}")
    return value if isinstance(value, Decimal) else Decimal(value)


def round_quantity(value: Decimal) -> Decimal:
    """Quantize a quantity to the stored precision."""
    return value.quantize(
        Decimal(1).scaleb(-QUANTITY_DECIMAL_PLACES), rounding=DEFAULT_ROUNDING
    )


def round_cost(value: Decimal, decimal_places: int = COST_DECIMAL_PLACES) -> Decimal:
    """
    Quantize a unit cost.

    Args:
        value: Raw cost (e.g. a total divided by a batch quantity).
        decimal_places: Places to keep, six by default.

    Returns:
        Rounded Decimal using ROUND_HALF_UP.
    """
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=DEFAULT_ROUNDING)
