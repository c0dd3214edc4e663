# Overview: Decimal helpers for monetary values.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value, *, field: str = "amount") -> Decimal:
    """
    Coerce user input (int, str, float, Decimal) to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary
    expansion. bools are rejected even though they are ints.
    """
    from .errors import ValidationError

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", field=field)
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number", field=field)
    else:
        raise ValidationError(f"{field} must be a number", field=field)

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    return result


def round_money(value: Decimal) -> Decimal:
    """Round half away from zero to 2 decimal places."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_to_scale(value: Decimal, places: int) -> Decimal:
    """Round half up to a Numeric column's scale, so stored == computed."""
    return Decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def decimal_to_text(value: Decimal) -> str:
    """Exact text form for JSON storage (no float round trip, no exponent)."""
    return format(value, "f")


def money_to_json(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(round_money(value))


def number_to_json(value: Decimal) -> int | float:
    """Plain JSON number for a Decimal: int when integral, float otherwise."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)
