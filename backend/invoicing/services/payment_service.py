# Overview: Payment application, amendment and reversal against invoices.

"""
Payment Service

A payment and the invoice balance it changes are written in one transaction:

    lock invoice -> insert/update/delete payment -> paid_amount +/- delta
    -> outstanding + status re-derived -> ledger event -> commit

The invoice row lock plus the invoice version_id make concurrent payments on
the same invoice serialize: the loser of a race is retried from a fresh read,
so both payments land and paid_amount equals their sum.

Customer metrics are refreshed after the commit and cannot fail the payment.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from ..errors import InvalidAmountError, NotFoundError, ValidationError
from ..extensions import db
from ..field_maps import PAYMENT_FIELDS
from ..models import Invoice, Payment
from ..money import round_money, to_decimal
from ..time_utils import parse_iso_datetime, today_utc, utcnow
from ..validation import ModelValidationPolicy, validate_payload
from . import customer_metrics_service
from .concurrency import lock_for_update, run_with_retry
from .invoice_service import apply_paid_amount, get_invoice, load_invoice_for_update
from .ledger_service import (
    EVENT_PAYMENT_APPLIED,
    EVENT_PAYMENT_REVERSED,
    EVENT_PAYMENT_UPDATED,
    append_ledger_event,
    record_status_change,
)
from .lifecycle_service import PAYABLE_STATUSES, VALID_PAYMENT_METHODS
from .tenant_service import LedgerContext, log_cross_tenant_lookup, scoped_query

logger = logging.getLogger(__name__)

PAYMENT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"amount", "method", "reference", "notes", "payment_date"}),
)


def _validate_amount(raw) -> Decimal:
    try:
        amount = to_decimal(raw, field="amount")
    except ValidationError:
        raise InvalidAmountError("Payment amount must be a positive number")
    amount = round_money(amount)
    if amount <= 0:
        raise InvalidAmountError()
    return amount


def _validate_method(method) -> str:
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"method must be one of: {', '.join(VALID_PAYMENT_METHODS)}", field="method"
        )
    return method


def _coerce_payment_date(value) -> datetime:
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError("paymentDate must be an ISO-8601 datetime", field="paymentDate")


def _payment_not_found(ctx: LedgerContext, payment_id: str) -> NotFoundError:
    owner = db.session.query(Payment.tenant_id).filter(Payment.id == payment_id).scalar()
    if owner is not None and owner != ctx.tenant_id:
        log_cross_tenant_lookup("Payment", payment_id, owner_tenant_id=owner, tenant_id=ctx.tenant_id)
    return NotFoundError("Payment")


def _lock_invoice(tenant_id: int, invoice_id: str) -> Invoice:
    invoice = lock_for_update(
        db.session.query(Invoice).filter(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id)
    ).first()
    if invoice is None:
        raise NotFoundError("Invoice")
    return invoice


def _after_commit(invoice: Invoice, previous_status: str) -> None:
    customer_metrics_service.handle_invoice_change(
        tenant_id=invoice.tenant_id,
        customer_id=invoice.customer_id,
        invoice_id=invoice.id,
        previous_status=previous_status,
        new_status=invoice.status,
        total_amount=invoice.total_amount,
        issue_date=invoice.issue_date,
    )


# =============================================================================
# APPLY
# =============================================================================

def apply_payment(
    ctx: LedgerContext,
    invoice_id: str,
    *,
    amount,
    method: str,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
    payment_date=None,
    today: Optional[date] = None,
) -> Payment:
    """
    Record a payment and update the invoice balance atomically.

    Draft and cancelled invoices do not accept payments. Overpayment is
    accepted; outstanding_amount goes negative.
    """
    today = today or today_utc()
    amount = _validate_amount(amount)
    method = _validate_method(method)
    paid_at = _coerce_payment_date(payment_date)
    state = {}

    def _op() -> Payment:
        invoice = load_invoice_for_update(ctx, invoice_id)

        previous = invoice.effective_status(today)
        if previous not in PAYABLE_STATUSES:
            raise ValidationError(f"Cannot record a payment on a {previous} invoice", field="status")

        payment = Payment(
            id=str(uuid4()),
            invoice_id=invoice.id,
            tenant_id=invoice.tenant_id,
            branch_id=invoice.branch_id,
            invoice_number=invoice.invoice_number,
            customer_id=invoice.customer_id,
            customer_name=invoice.customer_name,
            amount=amount,
            method=method,
            reference=(reference or None) and str(reference).strip()[:128],
            notes=notes or None,
            payment_date=paid_at,
        )
        db.session.add(payment)

        apply_paid_amount(invoice, invoice.paid_amount + amount, today)
        db.session.flush()

        append_ledger_event(
            tenant_id=invoice.tenant_id,
            branch_id=invoice.branch_id,
            event_type=EVENT_PAYMENT_APPLIED,
            invoice_id=invoice.id,
            payment_id=payment.id,
            amount=amount,
            actor_user_id=ctx.user_id,
            note=method,
        )
        record_status_change(invoice, previous, ctx)
        state["invoice"] = invoice
        state["previous"] = previous
        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    invoice = state["invoice"]
    logger.info(
        "Payment %s of %s applied to invoice %s (status %s)",
        payment.id,
        amount,
        invoice.invoice_number,
        invoice.status,
    )
    _after_commit(invoice, state["previous"])
    return payment


# =============================================================================
# REVERSE / UPDATE
# =============================================================================

def reverse_payment(ctx: LedgerContext, payment_id: str, *, today: Optional[date] = None) -> Invoice:
    """
    Delete a payment and subtract it from its invoice.

    Returns the updated invoice. A cancelled invoice stays cancelled.
    """
    today = today or today_utc()
    state = {}

    def _op() -> Invoice:
        payment = scoped_query(Payment, ctx).filter(Payment.id == payment_id).first()
        if payment is None:
            raise _payment_not_found(ctx, payment_id)

        invoice = _lock_invoice(ctx.tenant_id, payment.invoice_id)
        previous = invoice.effective_status(today)
        amount = payment.amount

        db.session.delete(payment)
        apply_paid_amount(invoice, invoice.paid_amount - amount, today)

        append_ledger_event(
            tenant_id=invoice.tenant_id,
            branch_id=invoice.branch_id,
            event_type=EVENT_PAYMENT_REVERSED,
            invoice_id=invoice.id,
            payment_id=payment_id,
            amount=amount,
            actor_user_id=ctx.user_id,
        )
        record_status_change(invoice, previous, ctx)
        state["previous"] = previous
        state["amount"] = amount
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    logger.info(
        "Payment %s of %s reversed on invoice %s (status %s)",
        payment_id,
        state["amount"],
        invoice.invoice_number,
        invoice.status,
    )
    _after_commit(invoice, state["previous"])
    return invoice


def update_payment(
    ctx: LedgerContext,
    payment_id: str,
    payload: dict,
    *,
    today: Optional[date] = None,
) -> Payment:
    """
    Amend a payment. An amount change moves the invoice balance by the delta.
    """
    today = today or today_utc()
    patch = validate_payload(
        model=Payment,
        fields=PAYMENT_FIELDS,
        payload=payload,
        policy=PAYMENT_UPDATE_POLICY,
        partial=True,
    )
    if "amount" in patch:
        patch["amount"] = _validate_amount(patch["amount"])
    if "method" in patch:
        patch["method"] = _validate_method(patch["method"])
    if "payment_date" in patch:
        patch["payment_date"] = _coerce_payment_date(patch["payment_date"])
    state = {}

    def _op() -> Payment:
        payment = scoped_query(Payment, ctx).filter(Payment.id == payment_id).first()
        if payment is None:
            raise _payment_not_found(ctx, payment_id)

        invoice = _lock_invoice(ctx.tenant_id, payment.invoice_id)
        previous = invoice.effective_status(today)
        delta = patch.get("amount", payment.amount) - payment.amount

        for key, value in patch.items():
            setattr(payment, key, value)

        if delta:
            apply_paid_amount(invoice, invoice.paid_amount + delta, today)

        append_ledger_event(
            tenant_id=invoice.tenant_id,
            branch_id=invoice.branch_id,
            event_type=EVENT_PAYMENT_UPDATED,
            invoice_id=invoice.id,
            payment_id=payment.id,
            amount=delta if delta else None,
            actor_user_id=ctx.user_id,
            note=", ".join(sorted(patch.keys())) or None,
        )
        record_status_change(invoice, previous, ctx)
        state["invoice"] = invoice
        state["previous"] = previous
        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    _after_commit(state["invoice"], state["previous"])
    return payment


# =============================================================================
# READ
# =============================================================================

def get_payment(ctx: LedgerContext, payment_id: str) -> Payment:
    payment = scoped_query(Payment, ctx).filter(Payment.id == payment_id).first()
    if payment is None:
        raise _payment_not_found(ctx, payment_id)
    return payment


def get_invoice_payments(ctx: LedgerContext, invoice_id: str) -> list[Payment]:
    """Payments of one invoice, newest first."""
    invoice = get_invoice(ctx, invoice_id)
    return (
        db.session.query(Payment)
        .filter(Payment.tenant_id == ctx.tenant_id, Payment.invoice_id == invoice.id)
        .order_by(Payment.payment_date.desc(), Payment.created_at.desc())
        .all()
    )


def list_payments(
    ctx: LedgerContext,
    *,
    invoice_id: Optional[str] = None,
    customer_id: Optional[int] = None,
    method: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: Optional[int] = None,
) -> list[Payment]:
    """Tenant/branch payments, newest first. Dates are inclusive days."""
    query = scoped_query(Payment, ctx)
    if invoice_id:
        query = query.filter(Payment.invoice_id == invoice_id)
    if customer_id is not None:
        query = query.filter(Payment.customer_id == customer_id)
    if method:
        query = query.filter(Payment.method == _validate_method(method))
    if start_date:
        query = query.filter(Payment.payment_date >= datetime(start_date.year, start_date.month, start_date.day))
    if end_date:
        end = datetime(end_date.year, end_date.month, end_date.day, 23, 59, 59, 999999)
        query = query.filter(Payment.payment_date <= end)

    query = query.order_by(Payment.payment_date.desc(), Payment.created_at.desc())
    if limit:
        query = query.limit(limit)
    return query.all()
