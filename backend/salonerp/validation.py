from __future__ import annotations
from datetime import datetime
from salonerp.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Longest bookable slot, in minutes
MAX_DURATION_MINUTES = 24 * 60


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level: a referenced record does not exist."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., insufficient stock)."""


class LocationAccessError(PermissionError):
    """403-level: the request context may not act on a location."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
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

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
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

    if isinstance(coltype, JSON):
        if not isinstance(value, list):
            raise ValidationError(f"{col.key} must be a list")
        return value

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


def require_positive_int(value: Any, field: str) -> int:
    """Strict positive integer check for loose JSON values."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{field} must be a positive integer")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.isdigit():
            raise ValidationError(f"{field} must be a positive integer")
        value = int(stripped)
    if value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def _check_price(patch: dict, field: str) -> None:
    if field in patch and patch[field] is not None:
        price = patch[field]
        if price < 0:
            raise ValidationError(f"{field} must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    _check_price(patch, "price_cents")
    _check_price(patch, "cost_cents")


def enforce_rules_service(patch: dict) -> None:
    _check_price(patch, "price_cents")
    if "duration" in patch and patch["duration"] is not None:
        if patch["duration"] <= 0 or patch["duration"] > MAX_DURATION_MINUTES:
            raise ValidationError(f"duration must be between 1 and {MAX_DURATION_MINUTES} minutes")


def enforce_rules_appointment(patch: dict) -> None:
    if "duration" in patch:
        duration = patch["duration"]
        if duration is None or duration <= 0:
            raise ValidationError("duration must be a positive number of minutes")
        if duration > MAX_DURATION_MINUTES:
            raise ValidationError(f"duration cannot exceed {MAX_DURATION_MINUTES} minutes")
    _check_price(patch, "price_cents")
