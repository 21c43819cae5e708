"""Monetary amount coercion for ledger fields.

Budgets written by older clients may hold ``spent`` or ``amount`` as strings,
``None`` or garbage. Ledger arithmetic runs on floats; rounding is left to
presentation.
"""

import math
from typing import Any

from procurement_core.errors import DataShapeError


def coerce_amount(value: Any, default: float = 0.0) -> float:
    """Convert a stored amount to float, falling back to ``default``.

    Accepts ints, floats and numeric strings. ``None``, booleans, NaN,
    infinities and anything unparsable yield ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def is_numeric_amount(value: Any) -> bool:
    """True when ``value`` is already a usable number (not a string)."""
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def strict_amount(field: str, value: Any) -> float:
    """Like ``coerce_amount`` but raises ``DataShapeError`` instead of defaulting."""
    sentinel = object()
    number = coerce_amount(value, default=sentinel)  # type: ignore[arg-type]
    if number is sentinel:
        raise DataShapeError(field, value)
    return number
