from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer
from sqlalchemy.orm import DeclarativeMeta


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

# A single cart or stock request never moves more packs than this
MAX_PACKS_PER_REQUEST = 100_000


class ValidationError(ValueError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"
    http_status = 400

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": {}}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """writable_fields: what clients are allowed to set (security boundary)"""
    writable_fields: set[str]


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion for JSON and path input.

    Rejects bools, floats, decimals and scientific notation so that
    "1e3" or 2.5 packs never silently become a quantity.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_id_list(key: str, value: Any) -> list[int]:
    """Non-empty list of integer ids, duplicates removed, order kept."""
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{key} must be a non-empty list of ids")
    seen: dict[int, None] = {}
    for raw in value:
        ident = coerce_int(key, raw)
        if ident <= 0:
            raise ValidationError(f"{key} must contain positive ids")
        seen[ident] = None
    return list(seen)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
) -> dict:
    """
    Validates + normalizes a partial update against:
    - SQLAlchemy column metadata (nullable, type)
    - a policy allowlist (writable_fields)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

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

        patch[k] = _coerce_value(col, raw)

    return patch


def enforce_rules_store_limits(patch: dict) -> None:
    """Limit values are non-negative; money is bounded like prices."""
    amount = patch.get("monthly_expense_limit_cents")
    if amount is not None:
        if amount < 0:
            raise ValidationError("monthly_expense_limit_cents must be >= 0")
        if amount > MAX_AMOUNT_CENTS:
            raise ValidationError(f"monthly_expense_limit_cents cannot exceed {MAX_AMOUNT_CENTS}")

    orders = patch.get("monthly_order_limit")
    if orders is not None and orders < 0:
        raise ValidationError("monthly_order_limit must be >= 0")

    if patch.get("budget_limit_enabled") and amount is None and "monthly_expense_limit_cents" in patch:
        raise ValidationError("monthly_expense_limit_cents is required when the budget limit is enabled")
    if patch.get("order_limit_enabled") and orders is None and "monthly_order_limit" in patch:
        raise ValidationError("monthly_order_limit is required when the order limit is enabled")


def enforce_rules_packs(key: str, packs: int, *, allow_negative: bool = False) -> None:
    if packs == 0:
        raise ValidationError(f"{key} must be non-zero")
    if packs < 0 and not allow_negative:
        raise ValidationError(f"{key} must be > 0")
    if abs(packs) > MAX_PACKS_PER_REQUEST:
        raise ValidationError(f"{key} cannot exceed {MAX_PACKS_PER_REQUEST} packs")
