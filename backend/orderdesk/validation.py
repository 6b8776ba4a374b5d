from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from orderdesk.time_utils import parse_iso_datetime

import re
from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from orderdesk.money import MAX_AMOUNT, to_money


class BusinessRuleError(ValueError):
    """400-level business rule violation (illegal transition, bad state)."""


class ValidationError(ValueError):
    """
    422-level input problem.

    Carries (field, reason) pairs so the HTTP layer can return field-level
    detail. The message reads "<field> is <reason>" per pair.
    """

    def __init__(self, errors: Iterable[tuple[str | None, str]] | str):
        if isinstance(errors, str):
            errors = [(None, errors)]
        self.errors = list(errors)
        super().__init__(", ".join(_describe(field, reason) for field, reason in self.errors))

    def to_detail(self) -> list[dict]:
        return [
            {
                "loc": ["body", field] if field else ["body"],
                "msg": reason,
                "type": "value_error",
            }
            for field, reason in self.errors
        ]

    def prefixed(self, prefix: str) -> "ValidationError":
        """Re-key errors under a parent field (e.g. items[0].quantity)."""
        return ValidationError(
            [(f"{prefix}.{field}" if field else prefix, reason) for field, reason in self.errors]
        )


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


class NotFoundError(LookupError):
    """404-level missing entity."""


def _describe(field: str | None, reason: str) -> str:
    return f"{field} is {reason}" if field else reason


def field_error(field: str, reason: str) -> ValidationError:
    return ValidationError([(field, reason)])


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - choices: enumerated values per field
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    choices: dict[str, tuple[str, ...]] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise field_error(col.key, "not a valid integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise field_error(col.key, "not a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise field_error(col.key, "not an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise field_error(col.key, "not a valid integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise field_error(col.key, "not an integer")
        # Other types
        raise field_error(col.key, "not a valid integer")

    # Amounts (NUMERIC) - accept numbers and numeric strings, normalize to cents
    if isinstance(coltype, Numeric):
        try:
            amount = to_money(value)
        except (InvalidOperation, ValueError):
            raise field_error(col.key, "not a valid amount")
        if abs(amount) > MAX_AMOUNT:
            raise field_error(col.key, f"above the maximum of {MAX_AMOUNT}")
        return amount

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
            return value.strip().lower() in {"true", "1"}
        raise field_error(col.key, "not a valid boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise field_error(col.key, "not an ISO-8601 datetime")
            if dt is None:
                raise field_error(col.key, "not an ISO-8601 datetime")
            return dt
        raise field_error(col.key, "not a datetime")


    # Strings / Text
    if isinstance(coltype, (String, Text)):
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
    - a policy allowlist (writable_fields) and enumerated choices
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    All problems are collected and raised together as one ValidationError.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[tuple[str | None, str]] = []

    required = policy.required_on_create or set()
    if not partial:
        for f in sorted(required):
            if f not in payload:
                errors.append((f, "required"))

    cols = _columns_by_key(model)
    choices = policy.choices or {}

    patch: dict = {}

    for k, raw in payload.items():
        # Reject unknown / non-writable fields
        if k not in policy.writable_fields or k not in cols:
            errors.append((k, "not an allowed field"))
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable or k in required:
                errors.append((k, "required"))
                continue
            patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValidationError as exc:
            errors.extend(exc.errors)
            continue

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                errors.append((k, "required"))
                continue

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors.append((k, f"longer than the maximum length of {col.type.length}"))
                continue

        if k in choices and val not in choices[k]:
            errors.append((k, f"not one of: {', '.join(choices[k])}"))
            continue

        patch[k] = val

    if errors:
        raise ValidationError(errors)

    return patch


def require_non_negative(patch: dict, *fields: str) -> None:
    errors = []
    for f in fields:
        value = patch.get(f)
        if value is not None and value < 0:
            errors.append((f, "below the minimum of 0"))
    if errors:
        raise ValidationError(errors)


_INT_ARG_RE = re.compile(r"-?[0-9]+")


def parse_int_arg(name: str, raw: str | None, *, required: bool = False, minimum: int | None = None) -> int | None:
    """Strict integer parsing for query-string values."""
    if raw is None or raw.strip() == "":
        if required:
            raise field_error(name, "required")
        return None
    stripped = raw.strip()
    # ASCII digits only
    if not _INT_ARG_RE.fullmatch(stripped):
        raise field_error(name, "not a valid integer")
    value = int(stripped)
    if minimum is not None and value < minimum:
        raise field_error(name, f"below the minimum of {minimum}")
    return value


def parse_bool_arg(name: str, raw: str | None) -> bool | None:
    if raw is None or raw.strip() == "":
        return None
    lowered = raw.strip().lower()
    if lowered in {"true", "1", "yes"}:
        return True
    if lowered in {"false", "0", "no"}:
        return False
    raise field_error(name, "not a valid boolean")
