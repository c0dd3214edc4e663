# Overview: Invoice lifecycle operations; creation, reads, updates, status changes and stats.

"""
Invoice Service

================================================================================
TRANSACTION MODEL
================================================================================

Each mutation runs inside run_with_retry():

    lock invoice row -> mutate -> recompute money -> ledger event -> commit

Post-commit side effects (customer metrics, inventory hook) run only after the
commit succeeds and never undo it.

MONEY:
- subtotal / discount / tax / total are recomputed from the stored line items
  on every update that touches items, discount, or tax. Recomputing the same
  inputs yields the same amounts.
- outstanding_amount = total_amount - paid_amount, always.

SCOPING:
- Reads and writes filter by ctx.tenant_id. ctx.branch_id narrows reads to
  one branch; None means every branch of the tenant.
- An id owned by another tenant is reported as not found.
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from flask import current_app
from sqlalchemy import and_, case, func, or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..field_maps import INVOICE_FIELDS
from ..models import Customer, Invoice
from ..money import ZERO, money_to_json, round_money
from ..serialization import parse_line_items, parse_tags
from ..time_utils import today_utc
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_invoice,
    enforce_rules_invoice_dates,
    validate_payload,
)
from . import customer_metrics_service, inventory_service
from .calculation_service import calculate_totals
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import (
    EVENT_INVOICE_CREATED,
    EVENT_INVOICE_DELETED,
    EVENT_INVOICE_UPDATED,
    append_ledger_event,
    record_status_change,
)
from .lifecycle_service import (
    INITIAL_STATUSES,
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_OVERDUE,
    STATUS_PAID,
    STATUS_PARTIAL,
    STATUS_PENDING,
    can_transition,
    effective_status,
    status_after_payment_change,
    validate_status,
)
from .sequence_service import invoice_number_taken, next_invoice_number
from .tax_rate_service import resolve_default_tax_rate
from .tenant_service import LedgerContext, log_cross_tenant_lookup, require_branch_in_tenant, scoped_query

logger = logging.getLogger(__name__)

# Fields that feed the money calculation
MONEY_INPUT_FIELDS = frozenset({"items", "discount_type", "discount_value", "tax_rate"})

_EDITABLE_FIELDS = frozenset({
    "customer_id",
    "customer_name",
    "customer_email",
    "customer_phone",
    "customer_address",
    "issue_date",
    "due_date",
    "status",
    "items",
    "discount_type",
    "discount_value",
    "tax_rate",
    "payment_terms",
    "currency",
    "exchange_rate",
    "is_recurring",
    "recurring_frequency",
    "recurring_end_date",
    "notes",
    "terms",
    "footer_text",
    "po_number",
    "tags",
})

CREATE_POLICY = ModelValidationPolicy(
    writable_fields=_EDITABLE_FIELDS | {"invoice_number"},
    required_on_create=frozenset({"customer_name", "items"}),
    passthrough_fields=frozenset({"items", "tags"}),
)

UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=_EDITABLE_FIELDS,
    passthrough_fields=frozenset({"items", "tags"}),
)

# Columns copied when an invoice is duplicated or regenerated
_CLONED_FIELDS = (
    "branch_id",
    "customer_id",
    "customer_name",
    "customer_email",
    "customer_phone",
    "customer_address",
    "items",
    "discount_type",
    "discount_value",
    "tax_rate",
    "payment_terms",
    "currency",
    "exchange_rate",
    "recurring_frequency",
    "recurring_end_date",
    "notes",
    "terms",
    "footer_text",
    "po_number",
    "tags",
)


# =============================================================================
# HELPERS
# =============================================================================

def _today(today: Optional[date]) -> date:
    return today or today_utc()


def _find_foreign_owner(invoice_id: str) -> Optional[int]:
    return db.session.query(Invoice.tenant_id).filter(Invoice.id == invoice_id).scalar()


def _not_found(ctx: LedgerContext, invoice_id: str) -> NotFoundError:
    owner = _find_foreign_owner(invoice_id)
    if owner is not None and owner != ctx.tenant_id:
        log_cross_tenant_lookup("Invoice", invoice_id, owner_tenant_id=owner, tenant_id=ctx.tenant_id)
    return NotFoundError("Invoice")


def load_invoice_for_update(ctx: LedgerContext, invoice_id: str) -> Invoice:
    invoice = lock_for_update(scoped_query(Invoice, ctx).filter(Invoice.id == invoice_id)).first()
    if invoice is None:
        raise _not_found(ctx, invoice_id)
    return invoice


def _require_customer(ctx: LedgerContext, customer_id: Optional[int]) -> None:
    if customer_id is None:
        return
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer")
    if customer.tenant_id != ctx.tenant_id:
        log_cross_tenant_lookup("Customer", customer_id, owner_tenant_id=customer.tenant_id, tenant_id=ctx.tenant_id)
        raise NotFoundError("Customer")


def _clean_payload(payload: dict, policy: ModelValidationPolicy, *, partial: bool) -> dict:
    patch = validate_payload(
        model=Invoice,
        fields=INVOICE_FIELDS,
        payload=payload,
        policy=policy,
        partial=partial,
    )
    enforce_rules_invoice(patch)
    if "items" in patch:
        patch["items"] = parse_line_items(patch["items"])
        if not patch["items"]:
            raise ValidationError("An invoice needs at least one line item", field="items")
    if "tags" in patch:
        patch["tags"] = parse_tags(patch["tags"])
    return patch


def apply_totals(invoice: Invoice) -> None:
    """Recompute derived money fields from the stored inputs."""
    totals = calculate_totals(
        invoice.line_items,
        discount_type=invoice.discount_type,
        discount_value=invoice.discount_value,
        tax_rate=invoice.tax_rate,
    )
    if totals.total_amount < 0:
        raise ValidationError("Invoice total cannot be negative", field="items")

    invoice.subtotal = totals.subtotal
    invoice.discount_amount = totals.discount_amount
    invoice.tax_amount = totals.tax_amount
    invoice.total_amount = totals.total_amount
    invoice.outstanding_amount = totals.total_amount - round_money(invoice.paid_amount or ZERO)


def apply_paid_amount(invoice: Invoice, paid_amount: Decimal, today: date) -> None:
    """
    Set paid_amount and re-derive outstanding_amount and status.

    Cancelled and draft invoices keep their status; everything else follows
    the payment rules, then the overdue rule.
    """
    invoice.paid_amount = round_money(paid_amount)
    invoice.outstanding_amount = round_money(invoice.total_amount) - invoice.paid_amount
    if invoice.status in (STATUS_CANCELLED, STATUS_DRAFT):
        return
    status = status_after_payment_change(invoice.paid_amount, invoice.total_amount)
    invoice.status = effective_status(status, invoice.paid_amount, invoice.due_date, today)


def clone_invoice(
    source: Invoice,
    *,
    invoice_number: str,
    issue_date: date,
    due_date: date,
    status: str,
    is_recurring: bool,
    parent_invoice_id: Optional[str],
    today: date,
) -> Invoice:
    """Copy the document fields of source into a new, unpaid invoice."""
    invoice = Invoice(
        id=str(uuid4()),
        tenant_id=source.tenant_id,
        invoice_number=invoice_number,
        issue_date=issue_date,
        due_date=due_date,
        is_recurring=is_recurring,
        parent_invoice_id=parent_invoice_id,
        paid_amount=ZERO,
    )
    for name in _CLONED_FIELDS:
        setattr(invoice, name, getattr(source, name))
    if not is_recurring:
        invoice.recurring_frequency = None
        invoice.recurring_end_date = None

    apply_totals(invoice)
    invoice.status = effective_status(status, ZERO, due_date, today)
    return invoice


def allocate_invoice_number(tenant_id: int, issued_on: date) -> str:
    return next_invoice_number(
        tenant_id=tenant_id,
        prefix=current_app.config["INVOICE_NUMBER_PREFIX"],
        issued_on=issued_on,
        pad=current_app.config["INVOICE_NUMBER_PAD"],
    )


def _metrics_after_commit(
    invoice_id: str,
    tenant_id: int,
    customer_id: Optional[int],
    previous_status: Optional[str],
    new_status: Optional[str],
    total_amount: Optional[Decimal],
    issue_date: Optional[date],
) -> None:
    customer_metrics_service.handle_invoice_change(
        tenant_id=tenant_id,
        customer_id=customer_id,
        invoice_id=invoice_id,
        previous_status=previous_status,
        new_status=new_status,
        total_amount=total_amount,
        issue_date=issue_date,
    )


# =============================================================================
# CREATE
# =============================================================================

def create_invoice(ctx: LedgerContext, payload: dict, *, today: Optional[date] = None) -> Invoice:
    """
    Create an invoice in ctx's branch.

    - status defaults to draft; only draft or pending may be requested
    - invoiceNumber is allocated unless supplied (supplied numbers must be unique)
    - taxRate defaults to the branch/tenant default tax rate
    - dueDate defaults to issueDate + DEFAULT_DUE_DAYS
    """
    today = _today(today)
    branch_id = ctx.require_branch()
    require_branch_in_tenant(branch_id, ctx.tenant_id)

    patch = _clean_payload(payload, CREATE_POLICY, partial=False)
    items = patch.pop("items")
    tags = patch.pop("tags", None)
    requested_number = patch.pop("invoice_number", None) or None

    status = patch.pop("status", None) or STATUS_DRAFT
    validate_status(status)
    if status not in INITIAL_STATUSES:
        raise ValidationError(
            f"New invoices must be {' or '.join(INITIAL_STATUSES)}, not {status}", field="status"
        )

    _require_customer(ctx, patch.get("customer_id"))

    issue_date = patch.pop("issue_date", None) or today
    due_date = patch.pop("due_date", None) or issue_date + timedelta(
        days=current_app.config["DEFAULT_DUE_DAYS"]
    )
    enforce_rules_invoice_dates(issue_date, due_date, patch.get("is_recurring"), patch.get("recurring_frequency"))

    if patch.get("tax_rate") is None:
        patch["tax_rate"] = resolve_default_tax_rate(ctx.tenant_id, branch_id)
    if patch.get("discount_value") is None:
        patch["discount_value"] = ZERO
    if not patch.get("currency"):
        patch["currency"] = current_app.config["DEFAULT_CURRENCY"]
    if patch.get("exchange_rate") is None:
        patch.pop("exchange_rate", None)
    if patch.get("is_recurring") is None:
        patch["is_recurring"] = False

    def _op() -> Invoice:
        if requested_number:
            if invoice_number_taken(ctx.tenant_id, requested_number):
                raise ValidationError(
                    f"Invoice number {requested_number} already exists", field="invoiceNumber"
                )
            number = requested_number
        else:
            number = allocate_invoice_number(ctx.tenant_id, issue_date)

        invoice = Invoice(
            id=str(uuid4()),
            tenant_id=ctx.tenant_id,
            branch_id=branch_id,
            invoice_number=number,
            issue_date=issue_date,
            due_date=due_date,
            paid_amount=ZERO,
            **patch,
        )
        invoice.line_items = items
        if tags is not None:
            invoice.tag_list = tags
        apply_totals(invoice)
        invoice.status = effective_status(status, ZERO, due_date, today)

        db.session.add(invoice)
        db.session.flush()

        append_ledger_event(
            tenant_id=ctx.tenant_id,
            branch_id=branch_id,
            event_type=EVENT_INVOICE_CREATED,
            invoice_id=invoice.id,
            amount=invoice.total_amount,
            to_status=invoice.status,
            actor_user_id=ctx.user_id,
            note=invoice.invoice_number,
        )
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    logger.info("Invoice %s created (tenant %s, branch %s)", invoice.invoice_number, ctx.tenant_id, branch_id)

    inventory_service.notify_invoice_created(invoice)
    return invoice


# =============================================================================
# READ
# =============================================================================

def get_invoice(ctx: LedgerContext, invoice_id: str) -> Invoice:
    invoice = scoped_query(Invoice, ctx).filter(Invoice.id == invoice_id).first()
    if invoice is None:
        raise _not_found(ctx, invoice_id)
    return invoice


def _overdue_clause(today: date):
    return and_(
        Invoice.status.in_((STATUS_PENDING, STATUS_OVERDUE)),
        Invoice.paid_amount == 0,
        Invoice.due_date < today,
    )


def _status_clause(status: str, today: date):
    """SQL filter matching the effective status, not the stored one."""
    if status == STATUS_OVERDUE:
        return _overdue_clause(today)
    if status == STATUS_PENDING:
        return and_(
            Invoice.status.in_((STATUS_PENDING, STATUS_OVERDUE)),
            or_(Invoice.paid_amount != 0, Invoice.due_date >= today),
        )
    return Invoice.status == status


def list_invoices(
    ctx: LedgerContext,
    *,
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: Optional[int] = None,
    today: Optional[date] = None,
) -> list[Invoice]:
    """List invoices newest first. Dates filter on issue_date, inclusive."""
    today = _today(today)
    query = scoped_query(Invoice, ctx)

    if status:
        validate_status(status)
        query = query.filter(_status_clause(status, today))
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    if start_date:
        query = query.filter(Invoice.issue_date >= start_date)
    if end_date:
        query = query.filter(Invoice.issue_date <= end_date)

    query = query.order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_overdue_invoices(ctx: LedgerContext, *, today: Optional[date] = None) -> list[Invoice]:
    """Unpaid invoices past their due date, including partially paid ones."""
    today = _today(today)
    past_due_partial = and_(Invoice.status == STATUS_PARTIAL, Invoice.due_date < today)
    return (
        scoped_query(Invoice, ctx)
        .filter(or_(_overdue_clause(today), past_due_partial))
        .order_by(Invoice.due_date, Invoice.invoice_number)
        .all()
    )


def get_recurring_invoices(ctx: LedgerContext, *, today: Optional[date] = None) -> list[Invoice]:
    """Active recurring templates (not cancelled, end date not passed)."""
    today = _today(today)
    return (
        scoped_query(Invoice, ctx)
        .filter(
            Invoice.is_recurring.is_(True),
            Invoice.status != STATUS_CANCELLED,
            or_(Invoice.recurring_end_date.is_(None), Invoice.recurring_end_date >= today),
        )
        .order_by(Invoice.due_date, Invoice.invoice_number)
        .all()
    )


# =============================================================================
# UPDATE / STATUS
# =============================================================================

def _apply_transition(invoice: Invoice, target: str, today: date) -> None:
    current = invoice.effective_status(today)
    if current == target:
        return
    if not can_transition(current, target, paid_amount=invoice.paid_amount):
        raise ValidationError(f"Cannot change status from {current} to {target}", field="status")
    invoice.status = effective_status(target, invoice.paid_amount, invoice.due_date, today)


def update_invoice(
    ctx: LedgerContext,
    invoice_id: str,
    payload: dict,
    *,
    today: Optional[date] = None,
) -> Invoice:
    """
    Patch an invoice. Money is recomputed when items, discount or tax change;
    a status in the payload goes through the same rules as set_invoice_status.
    """
    today = _today(today)
    patch = _clean_payload(payload, UPDATE_POLICY, partial=True)
    requested_status = patch.pop("status", None)
    if requested_status is not None:
        validate_status(requested_status)
    if "customer_name" in patch and not patch["customer_name"]:
        raise ValidationError("customerName cannot be blank", field="customerName")
    _require_customer(ctx, patch.get("customer_id"))

    snapshot = {}

    def _op() -> Invoice:
        invoice = load_invoice_for_update(ctx, invoice_id)
        previous_status = invoice.effective_status(today)
        snapshot.update(
            previous_status=invoice.status,
            previous_customer_id=invoice.customer_id,
        )

        money_changed = bool(MONEY_INPUT_FIELDS & patch.keys())
        if money_changed and invoice.status == STATUS_CANCELLED:
            raise ValidationError("Cannot change amounts on a cancelled invoice", field="items")

        for key, value in patch.items():
            if key == "items":
                invoice.line_items = value
            elif key == "tags":
                invoice.tag_list = value
            else:
                setattr(invoice, key, value)

        enforce_rules_invoice_dates(
            invoice.issue_date, invoice.due_date, invoice.is_recurring, invoice.recurring_frequency
        )

        if money_changed:
            apply_totals(invoice)
        apply_paid_amount(invoice, invoice.paid_amount, today)
        if requested_status is not None:
            _apply_transition(invoice, requested_status, today)
        elif invoice.status not in (STATUS_CANCELLED, STATUS_DRAFT):
            invoice.status = invoice.effective_status(today)

        append_ledger_event(
            tenant_id=invoice.tenant_id,
            branch_id=invoice.branch_id,
            event_type=EVENT_INVOICE_UPDATED,
            invoice_id=invoice.id,
            amount=invoice.total_amount,
            actor_user_id=ctx.user_id,
            note=", ".join(sorted(patch.keys())) or None,
        )
        record_status_change(invoice, previous_status, ctx)
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)

    _metrics_after_commit(
        invoice.id,
        invoice.tenant_id,
        invoice.customer_id,
        snapshot["previous_status"],
        invoice.status,
        invoice.total_amount,
        invoice.issue_date,
    )
    if snapshot["previous_customer_id"] not in (None, invoice.customer_id):
        _metrics_after_commit(
            invoice.id,
            invoice.tenant_id,
            snapshot["previous_customer_id"],
            snapshot["previous_status"],
            None,
            None,
            None,
        )
    return invoice


def set_invoice_status(
    ctx: LedgerContext,
    invoice_id: str,
    status: str,
    *,
    today: Optional[date] = None,
) -> Invoice:
    """
    Apply an explicit transition (submit, back to draft, cancel).

    Requesting the current status is a no-op. paid / partial / overdue are
    derived and cannot be requested.
    """
    today = _today(today)
    validate_status(status)

    def _op() -> Invoice:
        invoice = load_invoice_for_update(ctx, invoice_id)
        previous = invoice.effective_status(today)
        if previous == status:
            return invoice

        _apply_transition(invoice, status, today)
        record_status_change(invoice, previous, ctx)
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    logger.info("Invoice %s status -> %s", invoice.invoice_number, invoice.status)
    return invoice


def delete_invoice(ctx: LedgerContext, invoice_id: str) -> None:
    """Delete an invoice and, through the cascade, all of its payments."""
    snapshot = {}

    def _op() -> None:
        invoice = load_invoice_for_update(ctx, invoice_id)
        snapshot.update(
            tenant_id=invoice.tenant_id,
            customer_id=invoice.customer_id,
            status=invoice.status,
            number=invoice.invoice_number,
            payments=len(invoice.payments),
        )
        append_ledger_event(
            tenant_id=invoice.tenant_id,
            branch_id=invoice.branch_id,
            event_type=EVENT_INVOICE_DELETED,
            invoice_id=invoice.id,
            amount=invoice.paid_amount,
            from_status=invoice.status,
            actor_user_id=ctx.user_id,
            note=invoice.invoice_number,
        )
        db.session.delete(invoice)
        db.session.commit()

    run_with_retry(_op)
    logger.info(
        "Invoice %s deleted with %d payment(s) (tenant %s)",
        snapshot["number"],
        snapshot["payments"],
        snapshot["tenant_id"],
    )
    _metrics_after_commit(
        invoice_id,
        snapshot["tenant_id"],
        snapshot["customer_id"],
        snapshot["status"],
        None,
        None,
        None,
    )


def duplicate_invoice(ctx: LedgerContext, invoice_id: str, *, today: Optional[date] = None) -> Invoice:
    """
    Copy an invoice into a new draft dated today, keeping the original's
    payment window (due - issue days). Payments are not copied.
    """
    today = _today(today)

    def _op() -> Invoice:
        source = get_invoice(ctx, invoice_id)
        window = (source.due_date - source.issue_date).days
        copy = clone_invoice(
            source,
            invoice_number=allocate_invoice_number(source.tenant_id, today),
            issue_date=today,
            due_date=today + timedelta(days=max(window, 0)),
            status=STATUS_DRAFT,
            is_recurring=bool(source.is_recurring),
            parent_invoice_id=None,
            today=today,
        )
        db.session.add(copy)
        db.session.flush()
        append_ledger_event(
            tenant_id=copy.tenant_id,
            branch_id=copy.branch_id,
            event_type=EVENT_INVOICE_CREATED,
            invoice_id=copy.id,
            amount=copy.total_amount,
            to_status=copy.status,
            actor_user_id=ctx.user_id,
            note=f"duplicate of {source.invoice_number}",
        )
        db.session.commit()
        return copy

    copy = run_with_retry(_op)
    inventory_service.notify_invoice_created(copy)
    return copy


# =============================================================================
# STATS
# =============================================================================

@dataclass(frozen=True)
class InvoiceStats:
    total_count: int
    total_amount: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    draft_count: int
    pending_count: int
    partial_count: int
    paid_count: int
    overdue_count: int
    cancelled_count: int
    average_invoice_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "totalCount": self.total_count,
            "totalAmount": money_to_json(self.total_amount),
            "totalPaid": money_to_json(self.total_paid),
            "totalOutstanding": money_to_json(self.total_outstanding),
            "draftCount": self.draft_count,
            "pendingCount": self.pending_count,
            "partialCount": self.partial_count,
            "paidCount": self.paid_count,
            "overdueCount": self.overdue_count,
            "cancelledCount": self.cancelled_count,
            "averageInvoiceAmount": money_to_json(self.average_invoice_amount),
        }


def _as_money(value) -> Decimal:
    return round_money(Decimal(str(value or 0)))


def get_invoice_stats(
    ctx: LedgerContext,
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    customer_id: Optional[int] = None,
    today: Optional[date] = None,
) -> InvoiceStats:
    """Aggregates in one query; per-status counts use effective status."""
    today = _today(today)

    def _count(clause):
        return func.coalesce(func.sum(case((clause, 1), else_=0)), 0)

    query = scoped_query(Invoice, ctx).with_entities(
        func.count(Invoice.id),
        func.coalesce(func.sum(Invoice.total_amount), 0),
        func.coalesce(func.sum(Invoice.paid_amount), 0),
        func.coalesce(func.sum(Invoice.outstanding_amount), 0),
        _count(Invoice.status == STATUS_DRAFT),
        _count(_status_clause(STATUS_PENDING, today)),
        _count(Invoice.status == STATUS_PARTIAL),
        _count(Invoice.status == STATUS_PAID),
        _count(_overdue_clause(today)),
        _count(Invoice.status == STATUS_CANCELLED),
    )
    if start_date:
        query = query.filter(Invoice.issue_date >= start_date)
    if end_date:
        query = query.filter(Invoice.issue_date <= end_date)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)

    (count, total, paid, outstanding, draft, pending, partial, paid_count, overdue, cancelled) = query.one()

    count = int(count or 0)
    total_amount = _as_money(total)
    return InvoiceStats(
        total_count=count,
        total_amount=total_amount,
        total_paid=_as_money(paid),
        total_outstanding=_as_money(outstanding),
        draft_count=int(draft),
        pending_count=int(pending),
        partial_count=int(partial),
        paid_count=int(paid_count),
        overdue_count=int(overdue),
        cancelled_count=int(cancelled),
        average_invoice_amount=round_money(total_amount / count) if count else ZERO,
    )
