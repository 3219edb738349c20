from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from sqlalchemy import Boolean, Date, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from billing.errors import ValidationError
from billing.time_utils import parse_business_date


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999
MAX_QUANTITY = 1_000_000
MAX_ID_LENGTH = 64


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


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Accepts ints (not bools) and plain digit strings. Rejects floats,
    decimals and scientific notation instead of silently truncating.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_quantity(value: Any, field: str = "quantity") -> int:
    qty = coerce_int(value, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
    return qty


def coerce_cents(value: Any, field: str) -> int:
    cents = coerce_int(value, field)
    if cents < 0:
        raise ValidationError(f"{field} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS} ({MAX_PRICE_CENTS / 100:,.2f})")
    return cents


def coerce_percent_bps(value: Any, field: str = "tax_rate") -> int:
    """Percentage (e.g. 18 or "12.5") -> basis points (1800, 1250)."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        pct = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not pct.is_finite():
        raise ValidationError(f"{field} must be a number")
    if pct < 0 or pct > 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return int((pct * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def require_text(value: Any, field: str, max_length: int = 255) -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} cannot be blank")
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def optional_text(value: Any, field: str, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return require_text(value, field, max_length)


def require_record_id(value: Any, field: str = "id") -> str:
    return require_text(value, field, MAX_ID_LENGTH)


def coerce_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    allowed = tuple(choices)
    if not isinstance(value, str) or value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
    return value


def coerce_date(value: Any, field: str, default: date | None = None) -> date:
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    try:
        parsed = parse_business_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 date")
    if parsed is None:
        raise ValidationError(f"{field} must be an ISO-8601 date")
    return parsed


def require_object(value: Any, field: str) -> dict:
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object")
    return value


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, Date):
        return coerce_date(value, col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

    # Default: leave as-is
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
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price_cents" in patch and patch["price_cents"] is not None:
        coerce_cents(patch["price_cents"], "price_cents")
    if "stock" in patch and patch["stock"] is not None:
        if patch["stock"] < 0:
            raise ValidationError("stock must be >= 0")


def enforce_rules_party(patch: dict) -> None:
    if "type" in patch and patch["type"] not in ("Customer", "Supplier"):
        raise ValidationError("type must be one of: Customer, Supplier")
