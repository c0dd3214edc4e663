# Overview: Recurring invoice regeneration; due-date advancement and the tenant sweep.

"""
Recurring Sweep

A recurring invoice is a template. When its due date arrives the sweep issues
a child invoice for the next period and moves the template forward:

    child.issue_date      = today
    child.due_date        = advance(template.due_date, frequency)
    child.status          = pending (overdue if that date is already past)
    child.parent_invoice_id = template.id
    template.due_date     = child.due_date

Each template is handled in its own transaction with the template row locked
and the due-date condition re-checked under the lock. Two sweeps racing on the
same template produce one child; the second sees the advanced due date and
skips it.

One child per template per sweep: a template that is several periods behind
catches up one period at a time.

A failing template is rolled back, logged and reported; it does not stop the
rest of the sweep.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import or_

from ..errors import PartialSweepFailure, ValidationError
from ..extensions import db
from ..models import Invoice
from ..time_utils import today_utc
from .concurrency import lock_for_update, run_with_retry
from .invoice_service import allocate_invoice_number, clone_invoice
from .ledger_service import EVENT_RECURRING_GENERATED, append_ledger_event
from .lifecycle_service import (
    FREQUENCY_MONTHLY,
    FREQUENCY_QUARTERLY,
    FREQUENCY_WEEKLY,
    FREQUENCY_YEARLY,
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_PENDING,
)
from .tenant_service import LedgerContext

logger = logging.getLogger(__name__)

_FREQUENCY_STEPS = {
    FREQUENCY_WEEKLY: relativedelta(weeks=1),
    FREQUENCY_MONTHLY: relativedelta(months=1),
    FREQUENCY_QUARTERLY: relativedelta(months=3),
    FREQUENCY_YEARLY: relativedelta(years=1),
}


def advance_due_date(due_date: date, frequency: str) -> date:
    """
    Next due date for a frequency. relativedelta clamps to the last day of the
    target month (Jan 31 + 1 month -> Feb 28/29).
    """
    step = _FREQUENCY_STEPS.get(frequency)
    if step is None:
        raise ValidationError(f"Unknown recurring frequency: {frequency}", field="recurringFrequency")
    return due_date + step


@dataclass(frozen=True)
class SweepItemError:
    invoice_id: str
    invoice_number: Optional[str]
    reason: str

    def to_dict(self) -> dict:
        return {
            "invoiceId": self.invoice_id,
            "invoiceNumber": self.invoice_number,
            "reason": self.reason,
        }


@dataclass
class SweepResult:
    created: list = field(default_factory=list)
    errors: list[SweepItemError] = field(default_factory=list)

    @property
    def failure(self) -> Optional[PartialSweepFailure]:
        if not self.errors:
            return None
        return PartialSweepFailure(self.errors)

    def to_dict(self, today: Optional[date] = None) -> dict:
        data = {
            "created": [invoice.to_dict(today) for invoice in self.created],
            "createdCount": len(self.created),
            "errors": [e.to_dict() for e in self.errors],
        }
        if self.failure is not None:
            data["warning"] = self.failure.to_dict()
        return data


def _due_templates(tenant_id: int, today: date) -> list[tuple[str, str]]:
    return (
        db.session.query(Invoice.id, Invoice.invoice_number)
        .filter(
            Invoice.tenant_id == tenant_id,
            Invoice.is_recurring.is_(True),
            Invoice.status.notin_((STATUS_DRAFT, STATUS_CANCELLED)),
            Invoice.due_date <= today,
            or_(Invoice.recurring_end_date.is_(None), Invoice.recurring_end_date >= today),
        )
        .order_by(Invoice.due_date, Invoice.invoice_number)
        .all()
    )


def _generate_next(ctx: LedgerContext, template_id: str, today: date) -> Optional[Invoice]:
    template = lock_for_update(
        db.session.query(Invoice).filter(
            Invoice.id == template_id,
            Invoice.tenant_id == ctx.tenant_id,
        )
    ).first()

    # Re-check under the lock; another sweep may have advanced it already
    if (
        template is None
        or not template.is_recurring
        or template.status in (STATUS_DRAFT, STATUS_CANCELLED)
        or template.due_date > today
        or (template.recurring_end_date is not None and template.recurring_end_date < today)
    ):
        db.session.rollback()
        return None

    next_due = advance_due_date(template.due_date, template.recurring_frequency)
    child = clone_invoice(
        template,
        invoice_number=allocate_invoice_number(template.tenant_id, today),
        issue_date=today,
        due_date=next_due,
        status=STATUS_PENDING,
        is_recurring=False,
        parent_invoice_id=template.id,
        today=today,
    )
    db.session.add(child)
    template.due_date = next_due
    db.session.flush()

    append_ledger_event(
        tenant_id=child.tenant_id,
        branch_id=child.branch_id,
        event_type=EVENT_RECURRING_GENERATED,
        invoice_id=child.id,
        amount=child.total_amount,
        to_status=child.status,
        actor_user_id=ctx.user_id,
        note=f"from {template.invoice_number}",
    )
    db.session.commit()
    return child


def run_recurring_sweep(ctx: LedgerContext, *, today: Optional[date] = None) -> SweepResult:
    """
    Generate due children for every recurring template of ctx's tenant.

    ctx.branch_id is ignored: the sweep always covers the whole tenant.
    """
    today = today or today_utc()
    result = SweepResult()

    for template_id, template_number in _due_templates(ctx.tenant_id, today):
        try:
            child = run_with_retry(lambda: _generate_next(ctx, template_id, today))
        except Exception as exc:
            db.session.rollback()
            logger.exception("Recurring generation failed for invoice %s", template_number)
            result.errors.append(
                SweepItemError(
                    invoice_id=template_id,
                    invoice_number=template_number,
                    reason=getattr(exc, "message", None) or str(exc) or exc.__class__.__name__,
                )
            )
            continue

        if child is not None:
            result.created.append(child)
            logger.info("Recurring invoice %s generated from %s", child.invoice_number, template_number)

    if result.errors:
        logger.warning(
            "Recurring sweep for tenant %s: %d created, %d failed",
            ctx.tenant_id,
            len(result.created),
            len(result.errors),
        )
    return result
