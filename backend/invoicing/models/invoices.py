from __future__ import annotations

from datetime import date
from decimal import Decimal

from ..extensions import db
from ..field_maps import INVOICE_FIELDS, PAYMENT_FIELDS, to_wire
from ..money import money_to_json
from ..serialization import (
    LineItem,
    decode_line_items,
    decode_tags,
    encode_line_items,
    encode_tags,
)
from ..services.lifecycle_service import effective_status, is_past_due
from ..time_utils import to_iso_date, to_utc_z, today_utc

MONEY = db.Numeric(12, 2, asdecimal=True)


class Invoice(db.Model):
    """
    Invoice document.

    MONEY: subtotal, discount_amount, tax_amount, total_amount are derived
    from items / discount / tax_rate by the calculation service. paid_amount is
    the sum of this invoice's payments and outstanding_amount is always
    total_amount - paid_amount (negative when overpaid).

    STORAGE: items and tags are JSON text columns; use line_items / tag_list.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
        db.Index("ix_invoices_tenant_branch_status", "tenant_id", "branch_id", "status"),
        db.Index("ix_invoices_tenant_recurring", "tenant_id", "is_recurring"),
    )

    id = db.Column(db.String(36), primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    invoice_number = db.Column(db.String(64), nullable=False)

    # Parties (customer_id is optional: walk-in customers exist only by name)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_address = db.Column(db.Text, nullable=True)

    issue_date = db.Column(db.Date, nullable=False, index=True)
    due_date = db.Column(db.Date, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    items = db.Column(db.Text, nullable=False, default="[]")

    subtotal = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    discount_type = db.Column(db.String(16), nullable=True)  # percentage, fixed
    discount_value = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    discount_amount = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    tax_rate = db.Column(db.Numeric(7, 4, asdecimal=True), nullable=False, default=Decimal("0"))
    tax_amount = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    total_amount = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    paid_amount = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    outstanding_amount = db.Column(MONEY, nullable=False, default=Decimal("0.00"))

    payment_terms = db.Column(db.String(255), nullable=True)
    currency = db.Column(db.String(8), nullable=False, default="INR")
    exchange_rate = db.Column(db.Numeric(12, 6, asdecimal=True), nullable=False, default=Decimal("1"))

    # Recurrence (parent_invoice_id is a back-reference only)
    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    recurring_frequency = db.Column(db.String(16), nullable=True)
    recurring_end_date = db.Column(db.Date, nullable=True)
    parent_invoice_id = db.Column(db.String(36), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)
    terms = db.Column(db.Text, nullable=True)
    footer_text = db.Column(db.Text, nullable=True)
    po_number = db.Column(db.String(64), nullable=True)
    tags = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch")
    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    payments = db.relationship(
        "Payment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def line_items(self) -> list[LineItem]:
        return decode_line_items(self.items)

    @line_items.setter
    def line_items(self, value: list[LineItem]) -> None:
        self.items = encode_line_items(value)

    @property
    def tag_list(self) -> list[str]:
        return decode_tags(self.tags)

    @tag_list.setter
    def tag_list(self, value: list[str]) -> None:
        self.tags = encode_tags(value)

    def effective_status(self, today: date | None = None) -> str:
        return effective_status(self.status, self.paid_amount, self.due_date, today or today_utc())

    def to_dict(self, today: date | None = None) -> dict:
        today = today or today_utc()
        row = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "status": self.effective_status(today),
            "items": [item.to_dict() for item in self.line_items],
            "subtotal": money_to_json(self.subtotal),
            "discount_type": self.discount_type,
            "discount_value": money_to_json(self.discount_value),
            "discount_amount": money_to_json(self.discount_amount),
            "tax_rate": float(self.tax_rate) if self.tax_rate is not None else None,
            "tax_amount": money_to_json(self.tax_amount),
            "total_amount": money_to_json(self.total_amount),
            "paid_amount": money_to_json(self.paid_amount),
            "outstanding_amount": money_to_json(self.outstanding_amount),
            "payment_terms": self.payment_terms,
            "currency": self.currency,
            "exchange_rate": float(self.exchange_rate) if self.exchange_rate is not None else None,
            "is_recurring": bool(self.is_recurring),
            "recurring_frequency": self.recurring_frequency,
            "recurring_end_date": to_iso_date(self.recurring_end_date),
            "parent_invoice_id": self.parent_invoice_id,
            "notes": self.notes,
            "terms": self.terms,
            "footer_text": self.footer_text,
            "po_number": self.po_number,
            "tags": self.tag_list,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        data = to_wire(INVOICE_FIELDS, row)
        data["isPastDue"] = is_past_due(data["status"], self.due_date, today)
        return data


class Payment(db.Model):
    """
    Payment applied to an invoice.

    A payment never outlives its invoice (ON DELETE CASCADE + ORM cascade).
    invoice_number / customer_id / customer_name are snapshots taken when the
    payment was recorded and are not re-synced.

    METHODS: cash, card, bank_transfer, upi, cheque, online
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_tenant_branch_date", "tenant_id", "branch_id", "payment_date"),
    )

    id = db.Column(db.String(36), primary_key=True)
    invoice_id = db.Column(db.String(36), db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    invoice_number = db.Column(db.String(64), nullable=True)
    customer_id = db.Column(db.Integer, nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)

    amount = db.Column(MONEY, nullable=False)
    method = db.Column(db.String(32), nullable=False, index=True)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", back_populates="payments")

    def to_dict(self) -> dict:
        row = {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "amount": money_to_json(self.amount),
            "method": self.method,
            "reference": self.reference,
            "notes": self.notes,
            "payment_date": to_utc_z(self.payment_date),
            "created_at": to_utc_z(self.created_at),
        }
        return to_wire(PAYMENT_FIELDS, row)


class InvoiceSequence(db.Model):
    """
    Atomic per-tenant invoice number counter.

    Prevents two concurrent creates from allocating the same number.
    """
    __tablename__ = "invoice_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "prefix", name="uq_invoice_sequences_tenant_prefix"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    prefix = db.Column(db.String(16), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
