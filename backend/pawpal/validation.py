from __future__ import annotations
from datetime import date, datetime, time
from pawpal.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text, Time
from sqlalchemy.orm import DeclarativeMeta


# Largest amount accepted for any price, rate or fee
MAX_AMOUNT = 9_999_999.99


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., cage already reserved)."""


class NotFoundError(LookupError):
    """404-level missing row."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - ignore_unknown: drop keys outside writable_fields instead of rejecting
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    ignore_unknown: bool = False


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_number(col, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{col.key} must be a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise ValidationError(f"{col.key} must be a number")
    raise ValidationError(f"{col.key} must be a number")


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
            if value.is_integer():
                return int(value)
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Numeric):
        return _coerce_number(col, value)

    # Booleans (form posts send "true"/"false" strings)
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    # DateTime must be checked before Date
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        try:
            d = parse_iso_date(str(value))
        except ValueError:
            raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")
        if d is None:
            raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")
        return d

    if isinstance(coltype, Time):
        if isinstance(value, time):
            return value
        try:
            return time.fromisoformat(str(value).strip())
        except ValueError:
            raise ValidationError(f"{col.key} must be a time (HH:MM)")

    # Strings / Text
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
    Validates + normalizes incoming JSON against:
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
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in list(payload.keys()):
        if k not in policy.writable_fields or k not in cols:
            if policy.ignore_unknown:
                continue
            if k not in policy.writable_fields:
                raise ValidationError(f"Field not allowed: {k}")
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and isinstance(val, str) and val == "":
            if not col.nullable:
                raise ValidationError(f"{k} cannot be blank")
            val = None

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_amount(patch: dict, key: str, *, positive: bool, message: str) -> None:
    if key not in patch or patch[key] is None:
        return
    amount = patch[key]
    if positive and amount <= 0:
        raise ValidationError(message)
    if not positive and amount < 0:
        raise ValidationError(message)
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT:,.2f}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("price", "stock_quantity", "low_stock_threshold"):
        _check_amount(patch, key, positive=False, message="Price and quantities must be non-negative")

    if patch.get("is_on_sale") and patch.get("discount_value") is not None:
        value = patch["discount_value"]
        if patch.get("discount_type") == "percentage" and not 0 <= value <= 100:
            raise ValidationError("Percentage discount must be between 0 and 100")
        if patch.get("discount_type") == "fixed" and value < 0:
            raise ValidationError("Fixed discount must be non-negative")

    if "discount_type" in patch and patch["discount_type"] not in (None, "percentage", "fixed"):
        raise ValidationError("discount_type must be 'percentage' or 'fixed'")


def enforce_rules_cage(patch: dict) -> None:
    _check_amount(patch, "daily_rate", positive=True, message="Valid daily rate is required")
    if "capacity" in patch and patch["capacity"] is not None and patch["capacity"] < 1:
        raise ValidationError("Capacity must be at least 1")


def enforce_rules_service(patch: dict) -> None:
    _check_amount(patch, "price", positive=True, message="Valid price is required")
    if "duration_minutes" in patch and patch["duration_minutes"] is not None:
        if patch["duration_minutes"] <= 0:
            raise ValidationError("Valid duration is required")


def parse_approved(data: dict | None) -> bool:
    """Read the `approved` flag of a staff review; form posts send strings."""
    if data is None or "approved" not in data:
        raise ValidationError("approved is required")
    approved = data.get("approved")
    if isinstance(approved, str):
        return approved.strip().lower() in {"1", "true", "yes"}
    return bool(approved)
