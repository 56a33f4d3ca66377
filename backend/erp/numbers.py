from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

QUANTITY_QUANT = Decimal("0.001")
# Numeric(14, 3) holds at most 11 integer digits
QUANTITY_LIMIT = Decimal(10) ** 11


def to_decimal(value, field: str = "value") -> Decimal:
    """
    Coerce user input to a Decimal quantity.

    Raises ValueError for bools, NaN/infinity, and anything non-numeric.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"{field} must be a finite number")
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"{field} must be a number")
    else:
        raise ValueError(f"{field} must be a number")

    if not result.is_finite():
        raise ValueError(f"{field} must be a finite number")
    if abs(result) >= QUANTITY_LIMIT:
        raise ValueError(f"{field} is out of range")
    try:
        return result.quantize(QUANTITY_QUANT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"{field} is out of range")


def round_cents(value) -> int:
    """Nearest-cent rounding (half-up) of a Decimal/int amount expressed in cents."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def as_number(value):
    """JSON-friendly rendering of a Numeric column: int when integral, else float."""
    if value is None:
        return None
    value = Decimal(value)
    if value == value.to_integral_value():
        return int(value)
    return float(value)
