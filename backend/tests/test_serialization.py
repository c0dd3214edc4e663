# Overview: Pytest coverage for line item and tag text-column codecs.

from decimal import Decimal

import pytest

from invoicing.errors import ValidationError
from invoicing.serialization import (
    LineItem,
    decode_line_items,
    decode_tags,
    encode_line_items,
    encode_tags,
    parse_line_items,
    parse_tags,
)


class TestLineItemDecode:

    @pytest.mark.parametrize("text", [None, "", "not json", "{\"a\": 1}", "[1, 2]", "[{\"description\": \"x\"}]"])
    def test_bad_stored_text_decodes_to_empty(self, text):
        assert decode_line_items(text) == []

    def test_malformed_text_is_logged(self, caplog):
        decode_line_items("[{broken")
        assert "malformed line items" in caplog.text

    def test_decode_keeps_exact_decimals(self):
        items = decode_line_items('[{"description":"Paint","quantity":1.5,"rate":19.99}]')

        assert items == [LineItem(description="Paint", quantity=Decimal("1.5"), rate=Decimal("19.99"))]
        assert items[0].amount == Decimal("29.99")

    def test_encode_is_stable(self):
        text = encode_line_items([LineItem("Paint", Decimal("2"), Decimal("10.5"), item_id="SKU-1")])

        assert text == '[{"description":"Paint","quantity":"2","rate":"10.5","amount":"21.00","itemId":"SKU-1"}]'
        assert encode_line_items(decode_line_items(text)) == text

    def test_high_precision_survives_storage(self):
        item = LineItem("Fuel", Decimal("1234567.123456789012"), Decimal("0.100000000000000001"))

        decoded = decode_line_items(encode_line_items([item]))

        assert decoded == [item]
        assert decoded[0].amount == item.amount

    def test_wire_form_keeps_numbers(self):
        item = LineItem("Paint", Decimal("1.5"), Decimal("19.99"))
        assert item.to_dict() == {"description": "Paint", "quantity": 1.5, "rate": 19.99, "amount": 29.99}


class TestLineItemParse:

    def test_requires_description(self):
        with pytest.raises(ValidationError):
            parse_line_items([{"quantity": 1, "rate": 1}])

    def test_rejects_negative_quantity(self):
        with pytest.raises(ValidationError):
            parse_line_items([{"description": "x", "quantity": -1, "rate": 1}])

    def test_rejects_non_list(self):
        with pytest.raises(ValidationError):
            parse_line_items({"description": "x"})

    def test_none_is_empty(self):
        assert parse_line_items(None) == []


class TestTags:

    def test_round_trip(self):
        assert decode_tags(encode_tags(["vip", "net30"])) == ["vip", "net30"]

    def test_bad_stored_tags(self):
        assert decode_tags("{oops") == []
        assert decode_tags('[1, 2]') == []

    def test_parse_strips_and_drops_blanks(self):
        assert parse_tags([" vip ", "", "  "]) == ["vip"]

    def test_parse_rejects_non_strings(self):
        with pytest.raises(ValidationError):
            parse_tags(["ok", 3])
