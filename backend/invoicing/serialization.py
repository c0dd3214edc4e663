# Overview: Text-column serialization boundary for invoice line items and tags.

"""
Line items and tags are persisted as JSON text.

DECODE POLICY (explicit, tested):
- None / "" -> []
- malformed JSON, a non-list document, or a malformed element -> [] and a
  warning in the log. Reads never raise on bad stored text.

ENCODE:
- Deterministic: compact separators, fixed key order, decimals as exact
  strings (quantity "1.5", not the float 1.5). Numeric JSON from older rows
  still decodes. encode(decode(text)) == text for any text produced by encode.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional

from .errors import ValidationError
from .money import decimal_to_text, number_to_json, round_money, to_decimal

logger = logging.getLogger(__name__)

_SEPARATORS = (",", ":")


@dataclass(frozen=True)
class LineItem:
    """
    One invoice line. amount is always derived from quantity * rate.
    """
    description: str
    quantity: Decimal
    rate: Decimal
    item_id: Optional[str] = None

    @property
    def amount(self) -> Decimal:
        return round_money(self.quantity * self.rate)

    @classmethod
    def from_input(cls, raw: Any, *, index: int = 0) -> "LineItem":
        """Build from a wire dict ({description, quantity, rate, itemId?})."""
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object", field="items")

        description = str(raw.get("description") or "").strip()
        if not description:
            raise ValidationError(f"items[{index}].description is required", field="items")

        if "quantity" not in raw or "rate" not in raw:
            raise ValidationError(f"items[{index}] requires quantity and rate", field="items")
        quantity = to_decimal(raw["quantity"], field="items")
        rate = to_decimal(raw["rate"], field="items")
        if quantity < 0:
            raise ValidationError(f"items[{index}].quantity must be >= 0", field="items")
        if rate < 0:
            raise ValidationError(f"items[{index}].rate must be >= 0", field="items")

        item_id = raw.get("itemId")
        return cls(
            description=description,
            quantity=quantity,
            rate=rate,
            item_id=str(item_id) if item_id is not None else None,
        )

    def to_dict(self) -> dict:
        data = {
            "description": self.description,
            "quantity": number_to_json(self.quantity),
            "rate": number_to_json(self.rate),
            "amount": number_to_json(self.amount),
        }
        if self.item_id is not None:
            data["itemId"] = self.item_id
        return data

    def to_storage(self) -> dict:
        """Text-column form: decimals as exact strings, never floats."""
        data = {
            "description": self.description,
            "quantity": decimal_to_text(self.quantity),
            "rate": decimal_to_text(self.rate),
            "amount": decimal_to_text(self.amount),
        }
        if self.item_id is not None:
            data["itemId"] = self.item_id
        return data


def parse_line_items(raw: Any) -> list[LineItem]:
    """Validate wire input. Unlike decode, bad input here is a ValidationError."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("items must be a list", field="items")
    return [LineItem.from_input(entry, index=i) for i, entry in enumerate(raw)]


def encode_line_items(items: Iterable[LineItem]) -> str:
    return json.dumps([item.to_storage() for item in items], separators=_SEPARATORS)


def decode_line_items(text: Optional[str]) -> list[LineItem]:
    if not text:
        return []
    try:
        data = json.loads(text, parse_float=Decimal, parse_int=Decimal)
    except (TypeError, ValueError):
        logger.warning("Discarding malformed line items text: %.80r", text)
        return []
    if not isinstance(data, list):
        logger.warning("Discarding non-list line items document: %.80r", text)
        return []
    try:
        return [LineItem.from_input(entry, index=i) for i, entry in enumerate(data)]
    except ValidationError as exc:
        logger.warning("Discarding line items with malformed element: %s", exc.message)
        return []


def parse_tags(raw: Any) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(t, str) for t in raw):
        raise ValidationError("tags must be a list of strings", field="tags")
    return [t.strip() for t in raw if t.strip()]


def encode_tags(tags: Iterable[str]) -> str:
    return json.dumps(list(tags), separators=_SEPARATORS)


def decode_tags(text: Optional[str]) -> list[str]:
    if not text:
        return []
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        logger.warning("Discarding malformed tags text: %.80r", text)
        return []
    if not isinstance(data, list) or not all(isinstance(t, str) for t in data):
        logger.warning("Discarding non-string-list tags document: %.80r", text)
        return []
    return data
