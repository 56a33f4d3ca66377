from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .numbers import to_decimal
from .time_utils import coerce_datetime


# Maximum money amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

UNITS_OF_MEASURE = {"pieces", "kg", "liters", "meters", "units"}
PAYMENT_METHODS = {"cash", "card", "bank", "internal"}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what callers are allowed to set
    - required_on_create: fields required on create
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Quantities
    if isinstance(coltype, Numeric):
        try:
            return to_decimal(value, col.key)
        except ValueError as e:
            raise ValidationError(str(e))

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
            return value.strip().lower() in {"true", "1"}
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        try:
            dt = coerce_datetime(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        return dt

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming data against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def require_cents(value: Any, field: str, *, allow_negative: bool = False) -> int:
    """Money input in integer cents; integral finite floats are accepted."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer number of cents")
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise ValidationError(f"{field} must be a finite integer number of cents")
        value = int(value)
    elif isinstance(value, Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            raise ValidationError(f"{field} must be a finite integer number of cents")
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError(f"{field} must be an integer number of cents")
    elif not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents")

    if not allow_negative and value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if abs(value) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS} (${MAX_AMOUNT_CENTS / 100:,.2f})")
    return value


def require_quantity(value: Any, field: str, *, allow_zero: bool = False) -> Decimal:
    try:
        qty = to_decimal(value, field)
    except ValueError as e:
        raise ValidationError(str(e))
    if qty < 0 or (qty == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}")
    return qty


def require_id(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer id")
    return value


def require_text(value: Any, field: str, *, max_length: int = 255) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{field} cannot be blank")
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def optional_text(value: Any, field: str, *, max_length: int = 255) -> str:
    """Free-form label: trimmed, blank allowed, length-bounded."""
    text = str(value).strip() if value is not None else ""
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def require_choice(value: Any, choices: set[str], field: str) -> str:
    normalized = str(value).strip().lower() if value is not None else ""
    if normalized not in choices:
        raise ValidationError(f"Invalid {field} '{value}'. Must be one of: {', '.join(sorted(choices))}")
    return normalized


def optional_datetime(value: Any, field: str) -> datetime | None:
    try:
        return coerce_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def enforce_rules_item(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for field in ("purchase_cost_cents", "selling_price_cents"):
        if field in patch and patch[field] is not None:
            amount = patch[field]
            if amount < 0:
                raise ValidationError(f"{field} must be >= 0")
            if amount > MAX_AMOUNT_CENTS:
                raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS} (${MAX_AMOUNT_CENTS / 100:,.2f})")

    for field in ("current_stock", "reorder_level"):
        if field in patch and patch[field] is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")

    if "unit_of_measure" in patch and patch["unit_of_measure"] is not None:
        unit = patch["unit_of_measure"].lower()
        if unit not in UNITS_OF_MEASURE:
            raise ValidationError(
                f"Invalid unit_of_measure '{patch['unit_of_measure']}'. "
                f"Must be one of: {', '.join(sorted(UNITS_OF_MEASURE))}"
            )
        patch["unit_of_measure"] = unit

    if "sku" in patch and patch["sku"] == "":
        patch["sku"] = None
