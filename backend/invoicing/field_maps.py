# Overview: Explicit wire (camelCase) <-> storage (snake_case) field tables.

"""
Field Maps

Each entity has one static table pairing its camelCase wire name with its
snake_case column. The tables are checked against the SQLAlchemy mappers when
the models package is imported (verify_field_map), so a renamed or missing
column fails at start-up instead of silently dropping data.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ValidationError


@dataclass(frozen=True)
class FieldMapping:
    wire: str
    column: str


INVOICE_FIELDS: tuple[FieldMapping, ...] = (
    FieldMapping("id", "id"),
    FieldMapping("tenantId", "tenant_id"),
    FieldMapping("branchId", "branch_id"),
    FieldMapping("invoiceNumber", "invoice_number"),
    FieldMapping("customerId", "customer_id"),
    FieldMapping("customerName", "customer_name"),
    FieldMapping("customerEmail", "customer_email"),
    FieldMapping("customerPhone", "customer_phone"),
    FieldMapping("customerAddress", "customer_address"),
    FieldMapping("issueDate", "issue_date"),
    FieldMapping("dueDate", "due_date"),
    FieldMapping("status", "status"),
    FieldMapping("items", "items"),
    FieldMapping("subtotal", "subtotal"),
    FieldMapping("discountType", "discount_type"),
    FieldMapping("discountValue", "discount_value"),
    FieldMapping("discountAmount", "discount_amount"),
    FieldMapping("taxRate", "tax_rate"),
    FieldMapping("taxAmount", "tax_amount"),
    FieldMapping("totalAmount", "total_amount"),
    FieldMapping("paidAmount", "paid_amount"),
    FieldMapping("outstandingAmount", "outstanding_amount"),
    FieldMapping("paymentTerms", "payment_terms"),
    FieldMapping("currency", "currency"),
    FieldMapping("exchangeRate", "exchange_rate"),
    FieldMapping("isRecurring", "is_recurring"),
    FieldMapping("recurringFrequency", "recurring_frequency"),
    FieldMapping("recurringEndDate", "recurring_end_date"),
    FieldMapping("parentInvoiceId", "parent_invoice_id"),
    FieldMapping("notes", "notes"),
    FieldMapping("terms", "terms"),
    FieldMapping("footerText", "footer_text"),
    FieldMapping("poNumber", "po_number"),
    FieldMapping("tags", "tags"),
    FieldMapping("createdAt", "created_at"),
    FieldMapping("updatedAt", "updated_at"),
    FieldMapping("versionId", "version_id"),
)

PAYMENT_FIELDS: tuple[FieldMapping, ...] = (
    FieldMapping("id", "id"),
    FieldMapping("invoiceId", "invoice_id"),
    FieldMapping("tenantId", "tenant_id"),
    FieldMapping("branchId", "branch_id"),
    FieldMapping("invoiceNumber", "invoice_number"),
    FieldMapping("customerId", "customer_id"),
    FieldMapping("customerName", "customer_name"),
    FieldMapping("amount", "amount"),
    FieldMapping("method", "method"),
    FieldMapping("reference", "reference"),
    FieldMapping("notes", "notes"),
    FieldMapping("paymentDate", "payment_date"),
    FieldMapping("createdAt", "created_at"),
)


def _by_wire(fields):
    return {f.wire: f.column for f in fields}


def _by_column(fields):
    return {f.column: f.wire for f in fields}


def to_storage(fields: tuple[FieldMapping, ...], payload: dict) -> dict:
    """Rename wire keys to columns. Unknown keys are a ValidationError."""
    lookup = _by_wire(fields)
    out = {}
    for key, value in payload.items():
        column = lookup.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}", field=key)
        out[column] = value
    return out


def to_wire(fields: tuple[FieldMapping, ...], row: dict) -> dict:
    """Rename column keys to wire names. Unknown columns are a programming error."""
    lookup = _by_column(fields)
    return {lookup[column]: value for column, value in row.items()}


def verify_field_map(model, fields: tuple[FieldMapping, ...]) -> None:
    """
    Every mapped column must exist on the model and every model column must
    be mapped, one to one.
    """
    columns = {c.key for c in model.__mapper__.columns}
    mapped = [f.column for f in fields]
    wires = [f.wire for f in fields]

    if len(set(mapped)) != len(mapped) or len(set(wires)) != len(wires):
        raise RuntimeError(f"Duplicate entries in field map for {model.__name__}")

    missing = set(mapped) - columns
    unmapped = columns - set(mapped)
    if missing or unmapped:
        raise RuntimeError(
            f"Field map for {model.__name__} out of sync: "
            f"missing columns {sorted(missing)}, unmapped columns {sorted(unmapped)}"
        )
