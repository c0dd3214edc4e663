# Overview: Pytest coverage for invoice creation, updates, status changes and deletion.

from datetime import date
from decimal import Decimal

import pytest

from invoicing.errors import NotFoundError, ValidationError
from invoicing.models import Invoice, LedgerEvent, Payment
from invoicing.services import invoice_service, payment_service
from invoicing.services.inventory_service import register_inventory_hook
from invoicing.services.tenant_service import LedgerContext

TODAY = date(2026, 10, 19)


class TestCreateInvoice:

    def test_create_computes_money_and_defaults_to_draft(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(
            ctx_a,
            invoice_payload(discountType="percentage", discountValue=10, taxRate=18),
            today=TODAY,
        )

        assert invoice.status == "draft"
        assert invoice.subtotal == Decimal("100.00")
        assert invoice.discount_amount == Decimal("10.00")
        assert invoice.tax_amount == Decimal("16.20")
        assert invoice.total_amount == Decimal("106.20")
        assert invoice.paid_amount == Decimal("0.00")
        assert invoice.outstanding_amount == Decimal("106.20")

    def test_invoice_number_format_and_sequence(self, db_session, ctx_a, invoice_payload):
        first = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)
        second = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)

        assert first.invoice_number == "INV-202610-0001"
        assert second.invoice_number == "INV-202610-0002"

    def test_numbers_are_per_tenant(self, db_session, ctx_a, ctx_b, invoice_payload):
        a = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)
        b = invoice_service.create_invoice(ctx_b, invoice_payload(), today=TODAY)

        assert a.invoice_number == b.invoice_number == "INV-202610-0001"

    def test_supplied_number_must_be_unique(self, db_session, ctx_a, invoice_payload):
        invoice_service.create_invoice(ctx_a, invoice_payload(invoiceNumber="CUSTOM-1"), today=TODAY)

        with pytest.raises(ValidationError):
            invoice_service.create_invoice(ctx_a, invoice_payload(invoiceNumber="CUSTOM-1"), today=TODAY)

    def test_allocation_skips_taken_numbers(self, db_session, ctx_a, invoice_payload):
        invoice_service.create_invoice(ctx_a, invoice_payload(invoiceNumber="INV-202610-0001"), today=TODAY)
        generated = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)

        assert generated.invoice_number == "INV-202610-0002"

    def test_empty_items_rejected(self, db_session, ctx_a, invoice_payload):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(ctx_a, invoice_payload(items=[]), today=TODAY)

    def test_missing_customer_name_rejected(self, db_session, ctx_a, invoice_payload):
        payload = invoice_payload()
        del payload["customerName"]
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(ctx_a, payload, today=TODAY)

    def test_computed_status_cannot_be_requested(self, db_session, ctx_a, invoice_payload):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(ctx_a, invoice_payload(status="paid"), today=TODAY)

    def test_read_only_fields_rejected(self, db_session, ctx_a, invoice_payload):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(ctx_a, invoice_payload(totalAmount=1), today=TODAY)

    def test_negative_discount_rejected(self, db_session, ctx_a, invoice_payload):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(
                ctx_a, invoice_payload(discountType="fixed", discountValue=-5), today=TODAY
            )

    def test_due_date_defaults_from_issue_date(self, db_session, ctx_a, invoice_payload):
        payload = invoice_payload()
        del payload["dueDate"]
        invoice = invoice_service.create_invoice(ctx_a, payload, today=TODAY)

        assert invoice.due_date == date(2026, 11, 18)

    def test_requires_specific_branch(self, db_session, ctx_a_all, invoice_payload):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(ctx_a_all, invoice_payload(), today=TODAY)

    def test_foreign_branch_is_not_found(self, db_session, tenant_a, branch_b, invoice_payload):
        ctx = LedgerContext(tenant_id=tenant_a.id, branch_id=branch_b.id)
        with pytest.raises(NotFoundError):
            invoice_service.create_invoice(ctx, invoice_payload(), today=TODAY)

    def test_creation_is_recorded_in_ledger(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)

        event = db_session.query(LedgerEvent).filter_by(invoice_id=invoice.id).one()
        assert event.event_type == "invoice.created"
        assert event.actor_user_id == 7

    def test_wire_format_round_trip(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(
            ctx_a, invoice_payload(tags=["vip"], poNumber="PO-9"), today=TODAY
        )
        data = invoice.to_dict(TODAY)

        assert data["invoiceNumber"] == invoice.invoice_number
        assert data["customerName"] == "Ravi Traders"
        assert data["items"][0] == {"description": "Consulting", "quantity": 2, "rate": 50, "amount": 100}
        assert data["tags"] == ["vip"]
        assert data["poNumber"] == "PO-9"
        assert data["totalAmount"] == 100.0
        assert data["isPastDue"] is False


class TestInventoryHook:

    def test_hook_called_after_commit(self, app, db_session, ctx_a, invoice_payload):
        seen = []
        register_inventory_hook(app, lambda inv: seen.append(inv.invoice_number))
        try:
            invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)
        finally:
            register_inventory_hook(app, None)

        assert seen == [invoice.invoice_number]

    def test_hook_failure_keeps_invoice(self, app, db_session, ctx_a, invoice_payload):
        def broken(_invoice):
            raise RuntimeError("stock service down")

        register_inventory_hook(app, broken)
        try:
            invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)
        finally:
            register_inventory_hook(app, None)

        assert db_session.get(Invoice, invoice.id) is not None


class TestUpdateInvoice:

    def test_items_change_recomputes_totals(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(taxRate=10), today=TODAY)

        updated = invoice_service.update_invoice(
            ctx_a,
            invoice.id,
            {"items": [{"description": "Consulting", "quantity": 4, "rate": 50}]},
            today=TODAY,
        )

        assert updated.subtotal == Decimal("200.00")
        assert updated.tax_amount == Decimal("20.00")
        assert updated.total_amount == Decimal("220.00")
        assert updated.outstanding_amount == Decimal("220.00")

    def test_non_money_update_keeps_totals(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)

        updated = invoice_service.update_invoice(ctx_a, invoice.id, {"notes": "Thanks"}, today=TODAY)

        assert updated.notes == "Thanks"
        assert updated.total_amount == Decimal("100.00")

    def test_excess_tax_precision_is_rounded_before_totals(self, db_session, ctx_a, invoice_payload):
        items = [{"description": "Plant", "quantity": 1, "rate": 100000}]
        invoice = invoice_service.create_invoice(
            ctx_a, invoice_payload(items=items, taxRate="18.12345"), today=TODAY
        )
        created = (invoice.tax_rate, invoice.tax_amount, invoice.total_amount)

        assert created == (Decimal("18.1235"), Decimal("18123.50"), Decimal("118123.50"))

        after_notes = invoice_service.update_invoice(ctx_a, invoice.id, {"notes": "hello"}, today=TODAY)
        assert (after_notes.tax_rate, after_notes.tax_amount, after_notes.total_amount) == created

        resaved = invoice_service.update_invoice(ctx_a, invoice.id, {"items": items}, today=TODAY)
        assert (resaved.tax_rate, resaved.tax_amount, resaved.total_amount) == created

    def test_excess_discount_precision_is_rounded_before_totals(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(
            ctx_a,
            invoice_payload(
                items=[{"description": "Plant", "quantity": 1, "rate": 100000}],
                discountType="percentage",
                discountValue="12.345",
                taxRate=0,
            ),
            today=TODAY,
        )

        assert invoice.discount_value == Decimal("12.35")
        assert invoice.total_amount == Decimal("87650.00")

        updated = invoice_service.update_invoice(ctx_a, invoice.id, {"notes": "hello"}, today=TODAY)
        assert updated.total_amount == Decimal("87650.00")

    def test_total_drop_below_paid_marks_paid(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(status="pending"), today=TODAY)
        payment_service.apply_payment(ctx_a, invoice.id, amount=60, method="cash", today=TODAY)

        updated = invoice_service.update_invoice(
            ctx_a,
            invoice.id,
            {"items": [{"description": "Consulting", "quantity": 1, "rate": 50}]},
            today=TODAY,
        )

        assert updated.status == "paid"
        assert updated.outstanding_amount == Decimal("-10.00")

    def test_status_in_update_follows_transition_rules(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)

        with pytest.raises(ValidationError):
            invoice_service.update_invoice(ctx_a, invoice.id, {"status": "paid"}, today=TODAY)

        updated = invoice_service.update_invoice(ctx_a, invoice.id, {"status": "pending"}, today=TODAY)
        assert updated.status == "pending"

    def test_due_before_issue_rejected(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)

        with pytest.raises(ValidationError):
            invoice_service.update_invoice(ctx_a, invoice.id, {"dueDate": "2026-01-01"}, today=TODAY)

    def test_amounts_frozen_once_cancelled(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)
        invoice_service.set_invoice_status(ctx_a, invoice.id, "cancelled", today=TODAY)

        with pytest.raises(ValidationError):
            invoice_service.update_invoice(ctx_a, invoice.id, {"taxRate": 5}, today=TODAY)

    def test_unknown_invoice(self, db_session, ctx_a):
        with pytest.raises(NotFoundError):
            invoice_service.update_invoice(ctx_a, "missing", {"notes": "x"}, today=TODAY)


class TestSetStatus:

    def test_submit_draft(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)

        updated = invoice_service.set_invoice_status(ctx_a, invoice.id, "pending", today=TODAY)

        assert updated.status == "pending"
        events = [e.event_type for e in db_session.query(LedgerEvent).filter_by(invoice_id=invoice.id)]
        assert "invoice.status_changed" in events

    def test_submitting_past_due_draft_persists_overdue(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(
            ctx_a, invoice_payload(issueDate="2026-09-01", dueDate="2026-09-30"), today=TODAY
        )

        updated = invoice_service.set_invoice_status(ctx_a, invoice.id, "pending", today=TODAY)

        assert updated.status == "overdue"

    def test_same_status_is_noop(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)
        before = db_session.query(LedgerEvent).count()

        invoice_service.set_invoice_status(ctx_a, invoice.id, "draft", today=TODAY)

        assert db_session.query(LedgerEvent).count() == before

    def test_paid_cannot_be_cancelled(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(status="pending"), today=TODAY)
        payment_service.apply_payment(ctx_a, invoice.id, amount=100, method="upi", today=TODAY)

        with pytest.raises(ValidationError):
            invoice_service.set_invoice_status(ctx_a, invoice.id, "cancelled", today=TODAY)

    def test_cancel_partial_keeps_payments(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(status="pending"), today=TODAY)
        payment_service.apply_payment(ctx_a, invoice.id, amount=30, method="cash", today=TODAY)

        updated = invoice_service.set_invoice_status(ctx_a, invoice.id, "cancelled", today=TODAY)

        assert updated.status == "cancelled"
        assert updated.paid_amount == Decimal("30.00")
        assert db_session.query(Payment).filter_by(invoice_id=invoice.id).count() == 1


class TestDeleteAndDuplicate:

    def test_delete_cascades_payments(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(status="pending"), today=TODAY)
        payment_service.apply_payment(ctx_a, invoice.id, amount=40, method="cash", today=TODAY)
        payment_service.apply_payment(ctx_a, invoice.id, amount=10, method="card", today=TODAY)

        invoice_service.delete_invoice(ctx_a, invoice.id)

        assert db_session.get(Invoice, invoice.id) is None
        assert db_session.query(Payment).filter_by(invoice_id=invoice.id).count() == 0

    def test_ledger_survives_delete(self, db_session, ctx_a, invoice_payload):
        invoice = invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)
        invoice_service.delete_invoice(ctx_a, invoice.id)

        types = {e.event_type for e in db_session.query(LedgerEvent).filter_by(invoice_id=invoice.id)}
        assert types == {"invoice.created", "invoice.deleted"}

    def test_duplicate_creates_fresh_draft(self, db_session, ctx_a, invoice_payload):
        source = invoice_service.create_invoice(
            ctx_a, invoice_payload(status="pending", taxRate=18), today=date(2026, 9, 1)
        )
        payment_service.apply_payment(ctx_a, source.id, amount=50, method="cash", today=TODAY)

        copy = invoice_service.duplicate_invoice(ctx_a, source.id, today=TODAY)

        assert copy.id != source.id
        assert copy.invoice_number != source.invoice_number
        assert copy.status == "draft"
        assert copy.issue_date == TODAY
        assert copy.due_date == date(2026, 11, 18)
        assert copy.paid_amount == Decimal("0.00")
        assert copy.total_amount == source.total_amount
        assert copy.outstanding_amount == copy.total_amount
