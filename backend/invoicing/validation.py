# Overview: Payload validation for wire (camelCase) input against model metadata.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text

from .errors import ValidationError
from .field_maps import FieldMapping, to_storage
from .money import quantize_to_scale, to_decimal
from .time_utils import parse_iso_date, parse_iso_datetime


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: columns clients may set (security boundary)
    - required_on_create: columns required for create
    - passthrough_fields: writable columns the caller parses itself (JSON text columns)
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)
    passthrough_fields: frozenset[str] = field(default_factory=frozenset)


def _columns_by_key(model) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _coerce_value(col, value: Any, wire: str):
    coltype = col.type

    # Integers - reject floats, bools and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{wire} must be an integer", field=wire)
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{wire} must be an integer", field=wire)
        raise ValidationError(f"{wire} must be an integer", field=wire)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValidationError(f"{wire} must be a boolean", field=wire)

    # Numerics - rounded to the column scale, i.e. what a later read returns
    if isinstance(coltype, Numeric):
        number = to_decimal(value, field=wire)
        if coltype.scale is not None:
            number = quantize_to_scale(number, coltype.scale)
        return number

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{wire} must be an ISO-8601 datetime", field=wire)
            if dt is None:
                raise ValidationError(f"{wire} must be an ISO-8601 datetime", field=wire)
            return dt
        raise ValidationError(f"{wire} must be a datetime", field=wire)

    if isinstance(coltype, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{wire} must be an ISO-8601 date", field=wire)
            if d is None:
                raise ValidationError(f"{wire} must be an ISO-8601 date", field=wire)
            return d
        raise ValidationError(f"{wire} must be a date", field=wire)

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{wire} must be a string", field=wire)
        return str(value).strip()

    return value


def validate_payload(
    *,
    model,
    fields: tuple[FieldMapping, ...],
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming wire JSON against:
    - the entity's field map (unknown wire keys are rejected)
    - a policy allowlist (writable_fields)
    - SQLAlchemy column metadata (nullable, type, String length)
    - required_on_create (if partial=False)

    Returns a patch dict keyed by column name. passthrough_fields are copied
    through untouched for the caller to parse.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    storage = to_storage(fields, payload)
    wire_for = {f.column: f.wire for f in fields}

    for key in storage:
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {wire_for[key]}", field=wire_for[key])

    if not partial:
        missing = sorted(wire_for[k] for k in policy.required_on_create if storage.get(k) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    cols = _columns_by_key(model)
    patch: dict = {}

    for key, raw in storage.items():
        wire = wire_for[key]
        if key in policy.passthrough_fields:
            patch[key] = raw
            continue

        col = cols[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{wire} cannot be null", field=wire)
            patch[key] = None
            continue

        val = _coerce_value(col, raw, wire)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{wire} cannot be blank", field=wire)

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{wire} exceeds max length {col.type.length}", field=wire)

        patch[key] = val

    return patch


def enforce_rules_invoice(patch: dict) -> None:
    """
    Business rules that are not captured by column metadata alone.
    """
    from .services.lifecycle_service import VALID_DISCOUNT_TYPES, VALID_FREQUENCIES

    if patch.get("discount_type") is not None and patch["discount_type"] not in VALID_DISCOUNT_TYPES:
        raise ValidationError(
            f"discountType must be one of: {', '.join(VALID_DISCOUNT_TYPES)}", field="discountType"
        )
    if patch.get("discount_value") is not None and patch["discount_value"] < 0:
        raise ValidationError("discountValue must be >= 0", field="discountValue")

    if patch.get("tax_rate") is not None and not (0 <= patch["tax_rate"] <= 100):
        raise ValidationError("taxRate must be between 0 and 100", field="taxRate")

    if patch.get("exchange_rate") is not None and patch["exchange_rate"] <= 0:
        raise ValidationError("exchangeRate must be > 0", field="exchangeRate")

    freq = patch.get("recurring_frequency")
    if freq is not None and freq not in VALID_FREQUENCIES:
        raise ValidationError(
            f"recurringFrequency must be one of: {', '.join(VALID_FREQUENCIES)}",
            field="recurringFrequency",
        )

    if "currency" in patch and patch["currency"] is not None:
        patch["currency"] = patch["currency"].upper()


def enforce_rules_invoice_dates(issue_date, due_date, is_recurring, recurring_frequency) -> None:
    """Cross-field checks run against the merged (stored + patched) values."""
    if issue_date and due_date and due_date < issue_date:
        raise ValidationError("dueDate cannot be before issueDate", field="dueDate")
    if is_recurring and not recurring_frequency:
        raise ValidationError("recurringFrequency is required for recurring invoices", field="recurringFrequency")


def enforce_rules_tax_rate(patch: dict) -> None:
    if patch.get("rate") is not None and not (0 <= patch["rate"] <= 100):
        raise ValidationError("rate must be between 0 and 100", field="rate")
