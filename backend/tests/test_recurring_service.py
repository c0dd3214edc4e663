# Overview: Pytest coverage for recurring invoice regeneration.

from datetime import date
from decimal import Decimal

import pytest

from invoicing.errors import PartialSweepFailure, ValidationError
from invoicing.extensions import db
from invoicing.models import Invoice
from invoicing.services import invoice_service, recurring_service
from invoicing.services.recurring_service import advance_due_date


def _template(ctx, invoice_payload, **overrides):
    payload = invoice_payload(
        status="pending",
        isRecurring=True,
        recurringFrequency="monthly",
        issueDate="2024-01-01",
        dueDate="2024-01-31",
        taxRate=10,
    )
    payload.update(overrides)
    return invoice_service.create_invoice(ctx, payload, today=date(2024, 1, 1))


class TestAdvanceDueDate:

    @pytest.mark.parametrize("due,frequency,expected", [
        (date(2024, 1, 31), "monthly", date(2024, 2, 29)),
        (date(2023, 1, 31), "monthly", date(2023, 2, 28)),
        (date(2024, 1, 10), "weekly", date(2024, 1, 17)),
        (date(2024, 11, 30), "quarterly", date(2025, 2, 28)),
        (date(2024, 2, 29), "yearly", date(2025, 2, 28)),
    ])
    def test_advance(self, due, frequency, expected):
        assert advance_due_date(due, frequency) == expected

    def test_unknown_frequency(self):
        with pytest.raises(ValidationError):
            advance_due_date(date(2024, 1, 1), "daily")


class TestRecurringSweep:

    def test_generates_child_and_advances_template(self, db_session, ctx_a, invoice_payload):
        template = _template(ctx_a, invoice_payload)

        result = recurring_service.run_recurring_sweep(ctx_a, today=date(2024, 1, 31))

        assert len(result.created) == 1
        assert result.failure is None
        child = result.created[0]
        assert child.parent_invoice_id == template.id
        assert child.issue_date == date(2024, 1, 31)
        assert child.due_date == date(2024, 2, 29)
        assert child.status == "pending"
        assert child.is_recurring is False
        assert child.paid_amount == Decimal("0.00")
        assert child.total_amount == Decimal("110.00")
        assert child.invoice_number != template.invoice_number

        assert db_session.get(Invoice, template.id).due_date == date(2024, 2, 29)

    def test_not_due_yet(self, db_session, ctx_a, invoice_payload):
        _template(ctx_a, invoice_payload)

        result = recurring_service.run_recurring_sweep(ctx_a, today=date(2024, 1, 30))

        assert result.created == []

    def test_second_sweep_same_day_is_idempotent(self, db_session, ctx_a, invoice_payload):
        _template(ctx_a, invoice_payload)

        recurring_service.run_recurring_sweep(ctx_a, today=date(2024, 1, 31))
        again = recurring_service.run_recurring_sweep(ctx_a, today=date(2024, 1, 31))

        assert again.created == []
        assert db_session.query(Invoice).filter(Invoice.parent_invoice_id.isnot(None)).count() == 1

    def test_one_period_per_sweep(self, db_session, ctx_a, invoice_payload):
        template = _template(ctx_a, invoice_payload)

        first = recurring_service.run_recurring_sweep(ctx_a, today=date(2024, 4, 15))
        assert len(first.created) == 1
        assert first.created[0].status == "overdue"
        assert db_session.get(Invoice, template.id).due_date == date(2024, 2, 29)

        second = recurring_service.run_recurring_sweep(ctx_a, today=date(2024, 4, 15))
        assert len(second.created) == 1
        assert db_session.get(Invoice, template.id).due_date == date(2024, 3, 29)

    def test_end_date_passed_skips(self, db_session, ctx_a, invoice_payload):
        _template(ctx_a, invoice_payload, recurringEndDate="2024-01-15")

        result = recurring_service.run_recurring_sweep(ctx_a, today=date(2024, 1, 31))

        assert result.created == []

    @pytest.mark.parametrize("status", ["draft", "cancelled"])
    def test_inactive_templates_skipped(self, db_session, ctx_a, invoice_payload, status):
        template = _template(ctx_a, invoice_payload, status="draft")
        if status == "cancelled":
            invoice_service.set_invoice_status(ctx_a, template.id, "cancelled", today=date(2024, 1, 1))

        result = recurring_service.run_recurring_sweep(ctx_a, today=date(2024, 1, 31))

        assert result.created == []

    def test_sweep_is_tenant_scoped(self, db_session, ctx_a, ctx_b, invoice_payload):
        _template(ctx_a, invoice_payload)

        result = recurring_service.run_recurring_sweep(ctx_b, today=date(2024, 1, 31))

        assert result.created == []

    def test_one_failure_does_not_stop_the_rest(self, db_session, ctx_a, invoice_payload):
        broken = _template(ctx_a, invoice_payload)
        healthy = _template(ctx_a, invoice_payload, dueDate="2024-01-30")

        # Corrupt the frequency behind the validator's back
        db_session.query(Invoice).filter_by(id=broken.id).update({"recurring_frequency": "fortnightly"})
        db_session.commit()

        result = recurring_service.run_recurring_sweep(ctx_a, today=date(2024, 1, 31))

        assert [c.parent_invoice_id for c in result.created] == [healthy.id]
        assert len(result.errors) == 1
        assert result.errors[0].invoice_id == broken.id
        assert isinstance(result.failure, PartialSweepFailure)
        body = result.to_dict(date(2024, 1, 31))
        assert body["warning"]["code"] == "PARTIAL_SWEEP_FAILURE"
        assert db.session.get(Invoice, broken.id).due_date == date(2024, 1, 31)
