# Overview: Invoice number allocation; per-tenant atomic counters.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import Invoice, InvoiceSequence


def _bump(tenant_id: int, prefix: str) -> int | None:
    """Increment the counter in one statement; returns the allocated number."""
    stmt = (
        update(InvoiceSequence)
        .where(
            InvoiceSequence.tenant_id == tenant_id,
            InvoiceSequence.prefix == prefix,
        )
        .values(next_number=InvoiceSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    db.session.flush()
    current = (
        db.session.query(InvoiceSequence.next_number)
        .filter_by(tenant_id=tenant_id, prefix=prefix)
        .scalar()
    )
    return current - 1


def _allocate(tenant_id: int, prefix: str) -> int:
    allocated = _bump(tenant_id, prefix)
    if allocated is not None:
        return allocated

    try:
        with db.session.begin_nested():
            db.session.add(InvoiceSequence(tenant_id=tenant_id, prefix=prefix, next_number=2))
        return 1
    except IntegrityError:
        # Another transaction created the row first
        allocated = _bump(tenant_id, prefix)
        if allocated is None:
            raise
        return allocated


def invoice_number_taken(tenant_id: int, invoice_number: str) -> bool:
    return db.session.query(
        db.session.query(Invoice.id)
        .filter(Invoice.tenant_id == tenant_id, Invoice.invoice_number == invoice_number)
        .exists()
    ).scalar()


def next_invoice_number(*, tenant_id: int, prefix: str, issued_on: date, pad: int = 4) -> str:
    """
    Allocate the next PREFIX-YYYYMM-NNNN number for a tenant.

    The counter is per tenant and prefix and does not reset monthly. Numbers
    already taken by caller-supplied invoice numbers are skipped.
    """
    if not tenant_id:
        raise ValidationError("tenant_id is required")
    if not prefix:
        raise ValidationError("invoice number prefix is required")

    while True:
        number = f"{prefix}-{issued_on:%Y%m}-{_allocate(tenant_id, prefix):0{pad}d}"
        if not invoice_number_taken(tenant_id, number):
            return number
