# Overview: Pytest coverage for wire/storage field name mapping.

import pytest

from invoicing.errors import ValidationError
from invoicing.field_maps import INVOICE_FIELDS, PAYMENT_FIELDS, to_storage, to_wire, verify_field_map
from invoicing.models import Invoice, Payment


def test_invoice_map_covers_every_column():
    verify_field_map(Invoice, INVOICE_FIELDS)


def test_payment_map_covers_every_column():
    verify_field_map(Payment, PAYMENT_FIELDS)


def test_to_storage_renames_keys():
    assert to_storage(INVOICE_FIELDS, {"customerName": "A", "poNumber": "PO-1"}) == {
        "customer_name": "A",
        "po_number": "PO-1",
    }


def test_to_storage_rejects_unknown_keys():
    with pytest.raises(ValidationError) as exc:
        to_storage(INVOICE_FIELDS, {"customer_name": "snake case is not wire format"})
    assert exc.value.field == "customer_name"


def test_to_wire_renames_keys():
    assert to_wire(PAYMENT_FIELDS, {"invoice_id": "x", "payment_date": None}) == {
        "invoiceId": "x",
        "paymentDate": None,
    }


def test_verify_detects_unmapped_column():
    with pytest.raises(RuntimeError):
        verify_field_map(Invoice, INVOICE_FIELDS[:-1])
