# Overview: Pytest coverage for tax rates and default-rate application.

from datetime import date
from decimal import Decimal

import pytest

from invoicing.errors import NotFoundError, ValidationError
from invoicing.models import TaxRate
from invoicing.services import invoice_service, tax_rate_service

TODAY = date(2026, 10, 19)


def test_create_and_list(db_session, ctx_a):
    tax_rate_service.create_tax_rate(ctx_a, {"name": "GST 18%", "rate": 18})
    tax_rate_service.create_tax_rate(ctx_a, {"name": "Old", "rate": 5, "isActive": False})

    names = [r.name for r in tax_rate_service.list_tax_rates(ctx_a)]
    assert names == ["GST 18%"]
    assert len(tax_rate_service.list_tax_rates(ctx_a, include_inactive=True)) == 2


def test_rate_out_of_range(db_session, ctx_a):
    with pytest.raises(ValidationError):
        tax_rate_service.create_tax_rate(ctx_a, {"name": "Bad", "rate": 150})


def test_single_default_per_scope(db_session, ctx_a):
    first = tax_rate_service.create_tax_rate(ctx_a, {"name": "A", "rate": 5, "isDefault": True})
    second = tax_rate_service.create_tax_rate(ctx_a, {"name": "B", "rate": 12, "isDefault": True})

    assert db_session.get(TaxRate, first.id).is_default is False
    assert db_session.get(TaxRate, second.id).is_default is True


def test_default_applied_when_invoice_omits_tax(db_session, ctx_a, invoice_payload):
    tax_rate_service.create_tax_rate(ctx_a, {"name": "GST", "rate": 18, "isDefault": True})

    invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)

    assert invoice.tax_rate == Decimal("18")
    assert invoice.total_amount == Decimal("118.00")


def test_branch_default_wins(db_session, ctx_a, branch_a, invoice_payload):
    tax_rate_service.create_tax_rate(ctx_a, {"name": "Tenant", "rate": 18, "isDefault": True})
    tax_rate_service.create_tax_rate(ctx_a, {"name": "Branch", "rate": 5, "isDefault": True, "branchId": branch_a.id})

    invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)

    assert invoice.total_amount == Decimal("105.00")


def test_explicit_tax_rate_overrides_default(db_session, ctx_a, invoice_payload):
    tax_rate_service.create_tax_rate(ctx_a, {"name": "GST", "rate": 18, "isDefault": True})

    invoice = invoice_service.create_invoice(ctx_a, invoice_payload(taxRate=0), today=TODAY)

    assert invoice.total_amount == Decimal("100.00")


def test_update_foreign_rate_not_found(db_session, ctx_a, ctx_b):
    rate = tax_rate_service.create_tax_rate(ctx_a, {"name": "GST", "rate": 18})

    with pytest.raises(NotFoundError):
        tax_rate_service.update_tax_rate(ctx_b, rate.id, {"rate": 12})
