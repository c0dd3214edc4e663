# Overview: Pytest coverage for invoice listing, overdue/recurring queries and stats.

from datetime import date
from decimal import Decimal

import pytest

from invoicing.errors import ValidationError
from invoicing.services import invoice_service, payment_service

TODAY = date(2026, 10, 19)


@pytest.fixture
def mixed_invoices(db_session, ctx_a, invoice_payload):
    """
    draft (100), pending (100), overdue (100, due 2026-10-01),
    partial (100, 40 paid), paid (100), cancelled (100)
    """
    def make(**kw):
        return invoice_service.create_invoice(ctx_a, invoice_payload(**kw), today=TODAY)

    draft = make()
    pending = make(status="pending")
    overdue = make(status="pending", issueDate="2026-09-01", dueDate="2026-10-01")
    partial = make(status="pending")
    payment_service.apply_payment(ctx_a, partial.id, amount=40, method="cash", today=TODAY)
    paid = make(status="pending")
    payment_service.apply_payment(ctx_a, paid.id, amount=100, method="cash", today=TODAY)
    cancelled = make()
    invoice_service.set_invoice_status(ctx_a, cancelled.id, "cancelled", today=TODAY)
    return {
        "draft": draft,
        "pending": pending,
        "overdue": overdue,
        "partial": partial,
        "paid": paid,
        "cancelled": cancelled,
    }


class TestListInvoices:

    @pytest.mark.parametrize("status", ["draft", "pending", "overdue", "partial", "paid", "cancelled"])
    def test_status_filter_uses_effective_status(self, ctx_a, mixed_invoices, status):
        found = invoice_service.list_invoices(ctx_a, status=status, today=TODAY)

        assert [inv.id for inv in found] == [mixed_invoices[status].id]

    def test_pending_turns_overdue_without_writes(self, ctx_a, mixed_invoices):
        later = date(2026, 12, 1)
        overdue = invoice_service.list_invoices(ctx_a, status="overdue", today=later)

        assert {inv.id for inv in overdue} == {mixed_invoices["overdue"].id, mixed_invoices["pending"].id}

    def test_invalid_status_filter(self, ctx_a, mixed_invoices):
        with pytest.raises(ValidationError):
            invoice_service.list_invoices(ctx_a, status="archived", today=TODAY)

    def test_limit_and_order(self, ctx_a, mixed_invoices):
        found = invoice_service.list_invoices(ctx_a, limit=2, today=TODAY)

        assert [inv.id for inv in found] == [mixed_invoices["cancelled"].id, mixed_invoices["paid"].id]

    def test_date_range(self, ctx_a, mixed_invoices):
        found = invoice_service.list_invoices(
            ctx_a, start_date=date(2026, 9, 1), end_date=date(2026, 9, 30), today=TODAY
        )

        assert [inv.id for inv in found] == [mixed_invoices["overdue"].id]

    def test_branch_scope(self, db_session, tenant_a, branch_a2, ctx_a, ctx_a_all, mixed_invoices, invoice_payload):
        from invoicing.services.tenant_service import LedgerContext

        ctx_a2 = LedgerContext(tenant_id=tenant_a.id, branch_id=branch_a2.id)
        other = invoice_service.create_invoice(ctx_a2, invoice_payload(), today=TODAY)

        assert [inv.id for inv in invoice_service.list_invoices(ctx_a2, today=TODAY)] == [other.id]
        assert len(invoice_service.list_invoices(ctx_a, today=TODAY)) == 6
        assert len(invoice_service.list_invoices(ctx_a_all, today=TODAY)) == 7


class TestOverdueAndRecurring:

    def test_overdue_includes_past_due_partial(self, ctx_a, mixed_invoices):
        later = date(2026, 12, 1)
        found = {inv.id for inv in invoice_service.get_overdue_invoices(ctx_a, today=later)}

        assert found == {
            mixed_invoices["overdue"].id,
            mixed_invoices["pending"].id,
            mixed_invoices["partial"].id,
        }

    def test_recurring_listing(self, db_session, ctx_a, invoice_payload):
        active = invoice_service.create_invoice(
            ctx_a, invoice_payload(isRecurring=True, recurringFrequency="weekly"), today=TODAY
        )
        invoice_service.create_invoice(
            ctx_a,
            invoice_payload(isRecurring=True, recurringFrequency="weekly", recurringEndDate="2026-10-01",
                            issueDate="2026-09-01", dueDate="2026-09-02"),
            today=TODAY,
        )
        invoice_service.create_invoice(ctx_a, invoice_payload(), today=TODAY)

        found = invoice_service.get_recurring_invoices(ctx_a, today=TODAY)

        assert [inv.id for inv in found] == [active.id]


class TestInvoiceStats:

    def test_stats(self, ctx_a, mixed_invoices):
        stats = invoice_service.get_invoice_stats(ctx_a, today=TODAY)

        assert stats.total_count == 6
        assert stats.total_amount == Decimal("600.00")
        assert stats.total_paid == Decimal("140.00")
        assert stats.total_outstanding == Decimal("460.00")
        assert (stats.draft_count, stats.pending_count, stats.partial_count) == (1, 1, 1)
        assert (stats.paid_count, stats.overdue_count, stats.cancelled_count) == (1, 1, 1)
        assert stats.average_invoice_amount == Decimal("100.00")

    def test_stats_wire_format(self, ctx_a, mixed_invoices):
        data = invoice_service.get_invoice_stats(ctx_a, today=TODAY).to_dict()

        assert data["totalCount"] == 6
        assert data["totalPaid"] == 140.0
        assert data["overdueCount"] == 1
        assert data["averageInvoiceAmount"] == 100.0
        assert {
            "totalCount", "paidCount", "pendingCount", "overdueCount", "draftCount",
            "totalAmount", "totalPaid", "totalOutstanding", "averageInvoiceAmount",
        } <= data.keys()

    def test_empty_stats(self, db_session, ctx_a):
        stats = invoice_service.get_invoice_stats(ctx_a, today=TODAY)

        assert stats.total_count == 0
        assert stats.average_invoice_amount == Decimal("0.00")
