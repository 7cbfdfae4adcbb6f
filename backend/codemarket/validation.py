from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from sqlalchemy import Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationFailed


# Largest price accepted for a single booking code
MAX_PRICE = Decimal("9999999.99")
TWO_PLACES = Decimal("0.01")
# Integer columns are signed 64-bit on every supported backend
MAX_DB_INT = 2**63 - 1


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    Unknown keys are ignored rather than rejected: the legacy admin form
    posts an "action" discriminator alongside the item fields.
    """
    writable_fields: set[str]
    required_on_create: set[str] = frozenset()  # type: ignore[assignment]


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def in_id_range(value: int) -> bool:
    """True if value fits a signed 64-bit column; larger ids cannot exist."""
    return -MAX_DB_INT - 1 <= value <= MAX_DB_INT


def parse_int(
    value: Any,
    field: str,
    *,
    minimum: int | None = None,
    maximum: int | None = MAX_DB_INT,
) -> int:
    """
    Strict integer parsing: rejects bools, floats, decimals and blanks.
    Values past maximum (by default the 64-bit column limit) are rejected
    here rather than overflowing in the database driver. Row ids pass
    maximum=None: an id that large is simply absent, and the services
    answer NotFound for it.
    """
    if isinstance(value, bool):
        raise ValidationFailed(f"{field} must be an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        parsed = int(value.strip())
    else:
        raise ValidationFailed(f"{field} must be an integer")
    if minimum is not None and parsed < minimum:
        raise ValidationFailed(f"{field} must be >= {minimum}")
    if maximum is not None and parsed > maximum:
        raise ValidationFailed(f"{field} must be <= {maximum}")
    return parsed


def parse_amount(value: Any, field: str) -> Decimal:
    """Money in major units, rounded to two places; must be >= 0."""
    if isinstance(value, bool) or value is None:
        raise ValidationFailed(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationFailed(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationFailed(f"{field} must be a number")
    if amount < 0:
        raise ValidationFailed(f"{field} must be >= 0")
    if amount > MAX_PRICE:
        raise ValidationFailed(f"{field} cannot exceed {MAX_PRICE}")
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Major to minor units (cedis -> pesewas), as the payment widget charges."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _coerce_value(col, value: Any):
    coltype = col.type

    if isinstance(coltype, Numeric):
        return parse_amount(value, col.key)

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(*, model: DeclarativeMeta, payload: dict, policy: ModelValidationPolicy) -> dict:
    """
    Validates + normalizes incoming JSON against SQLAlchemy column metadata
    (type, String length) and the policy allowlist. Returns a cleaned patch
    dict with only writable fields; null values are dropped so column
    defaults apply.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationFailed("Invalid JSON payload")

    missing = [f for f in sorted(policy.required_on_create) if payload.get(f) in (None, "")]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    patch: dict = {}

    for key in policy.writable_fields:
        if key not in payload or payload[key] is None:
            continue
        col = cols[key]
        val = _coerce_value(col, payload[key])

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationFailed(f"{key} exceeds max length {col.type.length}")

        patch[key] = val

    return patch
