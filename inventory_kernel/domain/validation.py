"""
Validation -- input checks that run before any store access.

Every helper raises an InvalidInputError subclass carrying the offending
line index when one is given, so multi-line callers can say which line was
rejected.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from inventory_kernel.db.types import QUANTITY_DECIMAL_PLACES
from inventory_kernel.exceptions import InvalidQuantityError, MissingIdentifierError


def require_id(value: Any, field_name: str, line_index: int | None = None):
    if value is None or value == "":
        raise MissingIdentifierError(field_name, line_index=line_index)
    return value


def require_quantity(
    value: Any,
    *,
    positive: bool = True,
    line_index: int | None = None,
) -> Decimal:
    """
    Coerce to Decimal and check it.

    Args:
        value: Decimal, int or numeric string. Floats and bools are rejected.
        positive: If True, the value must be > 0. If False, only zero is
            rejected (signed adjustments).
        line_index: Position of the line in a multi-line request.

    Returns:
        The value as a Decimal.

    Raises:
        InvalidQuantityError: Non-decimal, non-finite, zero, negative where
            disallowed, or finer than the stored precision.
    """
    if value is None or isinstance(value, (bool, float)):
        raise InvalidQuantityError(value, "must be a Decimal, int or numeric string", line_index)
    try:
        qty = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidQuantityError(value, "not a number", line_index) from None
    if not qty.is_finite():
        raise InvalidQuantityError(value, "must be finite", line_index)
    if qty == 0:
        raise InvalidQuantityError(value, "must not be zero", line_index)
    if positive and qty < 0:
        raise InvalidQuantityError(value, "must be positive", line_index)
    if qty.as_tuple().exponent < -QUANTITY_DECIMAL_PLACES:
        raise InvalidQuantityError(
            value, f"more than {QUANTITY_DECIMAL_PLACES} decimal places", line_index
        )
    return qty


def require_non_negative(value: Any, field_name: str, line_index: int | None = None) -> Decimal:
    """Like require_quantity but zero is allowed (e.g. reserved portions)."""
    if value is None or isinstance(value, (bool, float)):
        raise InvalidQuantityError(value, f"{field_name} must be a Decimal", line_index)
    try:
        qty = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidQuantityError(value, f"{field_name} is not a number", line_index) from None
    if not qty.is_finite() or qty < 0:
        raise InvalidQuantityError(value, f"{field_name} must not be negative", line_index)
    return qty
