# Overview: Append-only audit trail for invoice and payment mutations.

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from ..extensions import db
from ..models import LedgerEvent
from .tenant_service import LedgerContext

"""
Ledger Event Invariants

- Append-only; no updates or deletes of existing events.
- Events are written inside the same DB transaction as the mutation they
  record, so a rolled-back payment leaves no event behind.
- Events keep invoice/payment ids by value and survive invoice deletion.
"""

EVENT_INVOICE_CREATED = "invoice.created"
EVENT_INVOICE_UPDATED = "invoice.updated"
EVENT_INVOICE_STATUS_CHANGED = "invoice.status_changed"
EVENT_INVOICE_DELETED = "invoice.deleted"
EVENT_PAYMENT_APPLIED = "payment.applied"
EVENT_PAYMENT_UPDATED = "payment.updated"
EVENT_PAYMENT_REVERSED = "payment.reversed"
EVENT_RECURRING_GENERATED = "recurring.generated"


def append_ledger_event(
    *,
    tenant_id: int,
    event_type: str,
    branch_id: int | None = None,
    invoice_id: str | None = None,
    payment_id: str | None = None,
    amount: Optional[Decimal] = None,
    from_status: str | None = None,
    to_status: str | None = None,
    actor_user_id: int | None = None,
    note: Optional[str] = None,
) -> LedgerEvent:
    ev = LedgerEvent(
        tenant_id=tenant_id,
        branch_id=branch_id,
        event_type=event_type,
        invoice_id=invoice_id,
        payment_id=payment_id,
        amount=amount,
        from_status=from_status,
        to_status=to_status,
        actor_user_id=actor_user_id,
        note=(note or None) and note[:255],
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def record_status_change(invoice, previous_status: str, ctx: LedgerContext, note: str | None = None) -> None:
    """Append a status_changed event if the status actually moved."""
    if previous_status == invoice.status:
        return
    append_ledger_event(
        tenant_id=invoice.tenant_id,
        branch_id=invoice.branch_id,
        event_type=EVENT_INVOICE_STATUS_CHANGED,
        invoice_id=invoice.id,
        from_status=previous_status,
        to_status=invoice.status,
        actor_user_id=ctx.user_id,
        note=note,
    )


def get_invoice_events(ctx: LedgerContext, invoice_id: str) -> list[LedgerEvent]:
    return (
        db.session.query(LedgerEvent)
        .filter(LedgerEvent.tenant_id == ctx.tenant_id, LedgerEvent.invoice_id == invoice_id)
        .order_by(LedgerEvent.occurred_at, LedgerEvent.id)
        .all()
    )
