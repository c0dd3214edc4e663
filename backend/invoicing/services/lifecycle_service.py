# Overview: Invoice status state machine; pure rules, no database work.

"""
Invoice Lifecycle

================================================================================
STATE MACHINE
================================================================================

    draft   --(submit)------------------------------> pending
    pending --(payment, paid >= total)--------------> paid
    pending --(payment, 0 < paid < total)-----------> partial
    pending --(due date passed, paid == 0)----------> overdue   [derived on read]
    partial --(payment, paid >= total)--------------> paid
    partial --(due date passed)---------------------> partial   (isPastDue=True)
    any non-terminal --(explicit cancel)------------> cancelled
    paid, cancelled: terminal for explicit transitions.

RULES:
1. paid / partial / overdue are computed from (paid, total, due date), never
   set by a caller.
2. Explicit transitions: draft -> pending, pending -> draft (nothing paid yet),
   and draft / pending / overdue / partial -> cancelled.
3. Cancelling a partially paid invoice keeps its payments (no refund).
4. overdue is re-derived from the stored status at read time; write paths
   persist the effective status they observe.
================================================================================
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from ..errors import ValidationError


STATUS_DRAFT = "draft"
STATUS_PENDING = "pending"
STATUS_PARTIAL = "partial"
STATUS_PAID = "paid"
STATUS_OVERDUE = "overdue"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = (
    STATUS_DRAFT,
    STATUS_PENDING,
    STATUS_PARTIAL,
    STATUS_PAID,
    STATUS_OVERDUE,
    STATUS_CANCELLED,
)

# Statuses a caller may request when creating an invoice
INITIAL_STATUSES = (STATUS_DRAFT, STATUS_PENDING)

# Statuses only the ledger itself may assign
COMPUTED_STATUSES = (STATUS_PARTIAL, STATUS_PAID, STATUS_OVERDUE)

EXPLICIT_TRANSITIONS = {
    (STATUS_DRAFT, STATUS_PENDING),
    (STATUS_PENDING, STATUS_DRAFT),
    (STATUS_DRAFT, STATUS_CANCELLED),
    (STATUS_PENDING, STATUS_CANCELLED),
    (STATUS_OVERDUE, STATUS_CANCELLED),
    (STATUS_PARTIAL, STATUS_CANCELLED),
}

# Statuses that accept payments
PAYABLE_STATUSES = (STATUS_PENDING, STATUS_OVERDUE, STATUS_PARTIAL, STATUS_PAID)

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
VALID_DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED)

FREQUENCY_WEEKLY = "weekly"
FREQUENCY_MONTHLY = "monthly"
FREQUENCY_QUARTERLY = "quarterly"
FREQUENCY_YEARLY = "yearly"
VALID_FREQUENCIES = (FREQUENCY_WEEKLY, FREQUENCY_MONTHLY, FREQUENCY_QUARTERLY, FREQUENCY_YEARLY)

METHOD_CASH = "cash"
METHOD_CARD = "card"
METHOD_BANK_TRANSFER = "bank_transfer"
METHOD_UPI = "upi"
METHOD_CHEQUE = "cheque"
METHOD_ONLINE = "online"
VALID_PAYMENT_METHODS = (
    METHOD_CASH,
    METHOD_CARD,
    METHOD_BANK_TRANSFER,
    METHOD_UPI,
    METHOD_CHEQUE,
    METHOD_ONLINE,
)


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(VALID_STATUSES)}",
            field="status",
        )


def can_transition(from_status: str, to_status: str, *, paid_amount: Decimal) -> bool:
    """
    Check an explicit (user requested) transition.

    Transitions into paid / partial / overdue are never explicit.
    pending -> draft is only allowed while nothing has been paid.
    """
    validate_status(from_status)
    validate_status(to_status)

    if to_status in COMPUTED_STATUSES:
        return False

    if (from_status, to_status) == (STATUS_PENDING, STATUS_DRAFT):
        return paid_amount == 0

    return (from_status, to_status) in EXPLICIT_TRANSITIONS


def is_overdue(status: str, paid_amount: Decimal, due_date: date | None, today: date) -> bool:
    return (
        status in (STATUS_PENDING, STATUS_OVERDUE)
        and paid_amount == 0
        and due_date is not None
        and due_date < today
    )


def effective_status(status: str, paid_amount: Decimal, due_date: date | None, today: date) -> str:
    """
    Status as it should be displayed right now.

    pending flips to overdue once the due date has passed with nothing paid,
    and a stored overdue flips back to pending if the due date was moved out.
    """
    if status not in (STATUS_PENDING, STATUS_OVERDUE):
        return status
    if is_overdue(status, paid_amount, due_date, today):
        return STATUS_OVERDUE
    return STATUS_PENDING


def is_past_due(status: str, due_date: date | None, today: date) -> bool:
    """Display flag: unpaid balance past its due date (covers partial too)."""
    return (
        status in (STATUS_PENDING, STATUS_OVERDUE, STATUS_PARTIAL)
        and due_date is not None
        and due_date < today
    )


def status_after_payment_change(paid_amount: Decimal, total_amount: Decimal) -> str:
    """
    Status after a payment is applied, reversed or amended.

    - paid >= total -> paid (overpayment included)
    - 0 < paid < total -> partial
    - paid <= 0 -> pending (overdue is re-derived on read; never draft)
    """
    if paid_amount >= total_amount and paid_amount > 0:
        return STATUS_PAID
    if paid_amount > 0:
        return STATUS_PARTIAL
    return STATUS_PENDING
