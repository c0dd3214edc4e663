# Overview: Pure money and tax derivations for invoices.

"""
Money/Tax Calculator

    subtotal        = round2(sum(quantity_i * rate_i))
    discount_amount = round2(subtotal * value / 100)   (percentage)
                    = round2(value)                    (fixed)
                      clamped to [0, subtotal]
    tax_amount      = round2((subtotal - discount_amount) * tax_rate / 100)
    total_amount    = subtotal - discount_amount + tax_amount

Rounding is half away from zero, applied once per derived field on exact
Decimal intermediates, so the same inputs always give the same outputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from ..errors import ValidationError
from ..money import ZERO, round_money, to_decimal
from ..serialization import LineItem
from .lifecycle_service import DISCOUNT_FIXED, DISCOUNT_PERCENTAGE, VALID_DISCOUNT_TYPES

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def calculate_subtotal(items: Iterable[LineItem]) -> Decimal:
    return round_money(sum((item.quantity * item.rate for item in items), Decimal(0)))


def calculate_discount(subtotal: Decimal, discount_type: Optional[str], discount_value) -> Decimal:
    if not discount_type:
        return ZERO
    if discount_type not in VALID_DISCOUNT_TYPES:
        raise ValidationError(
            f"discountType must be one of: {', '.join(VALID_DISCOUNT_TYPES)}",
            field="discountType",
        )

    value = to_decimal(discount_value if discount_value is not None else 0, field="discountValue")
    if discount_type == DISCOUNT_PERCENTAGE:
        amount = round_money(subtotal * value / HUNDRED)
    else:
        amount = round_money(value)

    if amount < 0:
        return ZERO
    return min(amount, subtotal)


def calculate_tax(taxable: Decimal, tax_rate) -> Decimal:
    rate = to_decimal(tax_rate if tax_rate is not None else 0, field="taxRate")
    return round_money(taxable * rate / HUNDRED)


def calculate_totals(
    items: Iterable[LineItem],
    discount_type: Optional[str] = None,
    discount_value=0,
    tax_rate=0,
) -> InvoiceTotals:
    items = list(items)
    subtotal = calculate_subtotal(items)
    discount_amount = calculate_discount(subtotal, discount_type, discount_value)
    tax_amount = calculate_tax(subtotal - discount_amount, tax_rate)
    total_amount = subtotal - discount_amount + tax_amount
    return InvoiceTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total_amount=total_amount,
    )


__all__ = [
    "DISCOUNT_FIXED",
    "DISCOUNT_PERCENTAGE",
    "InvoiceTotals",
    "calculate_discount",
    "calculate_subtotal",
    "calculate_tax",
    "calculate_totals",
]
