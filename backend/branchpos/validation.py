# Overview: Request input coercion and column-driven payload cleaning for catalog writes.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text

from .errors import ValidationError


# Whole pesos; keeps prices inside a 32-bit integer column
MAX_PRICE = 999_999_999


@dataclass(frozen=True)
class WritePolicy:
    """Which columns a client may set, and which must be present on create."""
    writable: frozenset[str]
    required: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, writable, required=()) -> "WritePolicy":
        return cls(frozenset(writable), frozenset(required))


def coerce_int(value: Any, name: str) -> int:
    """
    Whole numbers only.

    Accepts ints, integral floats (spreadsheet cells arrive as 12.0) and plain
    digit strings. Bools, fractions, exponents and "12.5"-style strings fail.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{name} must be an integer, not a decimal")
        return int(value)
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be an integer")

    text = value.strip()
    sign, digits = ("-", text[1:]) if text.startswith("-") else ("", text.lstrip("+"))
    if not (digits.isascii() and digits.isdigit()):
        raise ValidationError(f"{name} must be a plain integer")
    return int(sign + digits)


def coerce_positive_int(value: Any, name: str) -> int:
    if value is None:
        raise ValidationError(f"{name} is required")
    n = coerce_int(value, name)
    if n <= 0:
        raise ValidationError(f"{name} must be a positive integer")
    return n


def coerce_amount(value: Any, name: str) -> int:
    """Whole-peso amount, must be >= 0."""
    # CLP has no minor unit in circulation, so cash counts and floats are integers
    if value is None:
        raise ValidationError(f"{name} is required")
    n = coerce_int(value, name)
    if n < 0:
        raise ValidationError(f"{name} must be >= 0")
    return n


def require_fields(data: dict | None, *names: str) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [n for n in names if data.get(n) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return data


def _clean_value(column, raw: Any):
    if raw is None:
        if not column.nullable:
            raise ValidationError(f"{column.key} cannot be null")
        return None

    kind = column.type
    if isinstance(kind, Boolean):
        if not isinstance(raw, bool):
            raise ValidationError(f"{column.key} must be a boolean")
        return raw
    if isinstance(kind, (Integer, Numeric)):
        return coerce_int(raw, column.key)
    if isinstance(kind, (String, Text)):
        text = str(raw).strip()
        if not text and not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        limit = getattr(kind, "length", None)
        if limit and len(text) > limit:
            raise ValidationError(f"{column.key} exceeds max length {limit}")
        return text
    return raw


def validate_payload(*, model, payload: dict | None, policy: WritePolicy, partial: bool) -> dict:
    """
    Clean a JSON body into a column patch for `model`.

    Keys outside the policy are rejected, not dropped. On create
    (partial=False) every required key must be present; on update only the
    keys sent are checked. Values are coerced by column type and checked
    against nullability and String length.
    """
    payload = {} if payload is None else payload
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    columns = {c.key: c for c in model.__mapper__.columns}
    unknown = sorted(k for k in payload if k not in policy.writable or k not in columns)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    if not partial:
        missing = sorted(policy.required.difference(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return {k: _clean_value(columns[k], v) for k, v in payload.items()}


def enforce_rules_product(patch: dict) -> None:
    """Price/cost range and tax percentage, which column types can not express."""
    for name in ("price", "cost"):
        amount = patch.get(name)
        if amount is None:
            continue
        if not 0 <= amount <= MAX_PRICE:
            raise ValidationError(f"{name} must be between 0 and {MAX_PRICE}")

    tax_rate = patch.get("tax_rate")
    if tax_rate is not None and not 0 <= tax_rate <= 100:
        raise ValidationError("tax_rate must be between 0 and 100")
