# Overview: Customer spend metrics derived from the tenant's invoices.

"""
Customer Metrics

Metrics are recomputed from invoices (never incremented), so replaying a
trigger is harmless and a reversed payment or deleted invoice simply drops out
on the next recompute.

    total_orders        = count of counted invoices
    total_spent         = sum(total_amount) of counted invoices
    average_order_value = round2(total_spent / total_orders), 0 when none
    last_order_date     = max(issue_date) of counted invoices

"Counted" statuses come from CUSTOMER_METRICS_STATUSES (default: paid only).

TRIGGER: a single post-commit hook, handle_invoice_change(), called by the
invoice and payment services after the ledger transaction commits. A metrics
failure is logged and never undoes or fails the payment that caused it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Customer, Invoice
from ..money import ZERO, round_money
from .lifecycle_service import STATUS_PAID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoicePaidEvent:
    tenant_id: int
    customer_id: int
    invoice_id: str
    total_amount: Decimal
    issue_date: Optional[date] = None


@dataclass
class RecalculationSummary:
    updated: int = 0
    failed: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"updated": self.updated, "failed": list(self.failed)}


def _counted_statuses() -> tuple[str, ...]:
    return tuple(current_app.config.get("CUSTOMER_METRICS_STATUSES", (STATUS_PAID,)))


def recompute_customer_metrics(tenant_id: int, customer_id: int) -> Optional[Customer]:
    """Recompute and commit one customer's metrics. Unknown customer -> None."""
    customer = (
        db.session.query(Customer)
        .filter(Customer.id == customer_id, Customer.tenant_id == tenant_id)
        .first()
    )
    if customer is None:
        logger.warning("Metrics skipped: customer %s not found for tenant %s", customer_id, tenant_id)
        return None

    count, spent, last_date = (
        db.session.query(
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.total_amount), 0),
            func.max(Invoice.issue_date),
        )
        .filter(
            Invoice.tenant_id == tenant_id,
            Invoice.customer_id == customer_id,
            Invoice.status.in_(_counted_statuses()),
        )
        .one()
    )

    total_spent = round_money(Decimal(str(spent or 0)))
    customer.total_orders = int(count or 0)
    customer.total_spent = total_spent
    customer.average_order_value = round_money(total_spent / count) if count else ZERO
    customer.last_order_date = last_date

    db.session.commit()
    return customer


def on_invoice_paid(event: InvoicePaidEvent) -> Optional[Customer]:
    logger.info(
        "Invoice %s paid; refreshing metrics for customer %s (tenant %s)",
        event.invoice_id,
        event.customer_id,
        event.tenant_id,
    )
    return recompute_customer_metrics(event.tenant_id, event.customer_id)


def handle_invoice_change(
    *,
    tenant_id: int,
    customer_id: Optional[int],
    invoice_id: str,
    previous_status: Optional[str],
    new_status: Optional[str],
    total_amount: Optional[Decimal] = None,
    issue_date: Optional[date] = None,
) -> None:
    """
    Post-commit hook. new_status None means the invoice was deleted.
    """
    if customer_id is None:
        return

    counted = _counted_statuses()
    try:
        if new_status == STATUS_PAID and previous_status != STATUS_PAID:
            on_invoice_paid(
                InvoicePaidEvent(
                    tenant_id=tenant_id,
                    customer_id=customer_id,
                    invoice_id=invoice_id,
                    total_amount=total_amount if total_amount is not None else ZERO,
                    issue_date=issue_date,
                )
            )
        elif previous_status in counted or new_status in counted:
            recompute_customer_metrics(tenant_id, customer_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Failed to update metrics for customer %s after invoice %s changed",
            customer_id,
            invoice_id,
        )


def recalculate_all_customer_metrics(tenant_id: Optional[int] = None) -> RecalculationSummary:
    """Batch recompute; one customer's failure does not stop the rest."""
    query = db.session.query(Customer.tenant_id, Customer.id)
    if tenant_id is not None:
        query = query.filter(Customer.tenant_id == tenant_id)
    targets = query.order_by(Customer.id).all()

    summary = RecalculationSummary()
    for owner_tenant_id, customer_id in targets:
        try:
            recompute_customer_metrics(owner_tenant_id, customer_id)
            summary.updated += 1
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to recalculate metrics for customer %s", customer_id)
            summary.failed.append(customer_id)
    return summary
