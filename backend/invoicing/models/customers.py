from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_iso_date, to_utc_z


class Customer(db.Model):
    """
    Customer record owned by the CRM side of the application.

    The ledger never edits contact data. It only refreshes the denormalized
    spend aggregates, recomputed from invoices by the customer metrics
    service (never accumulated incrementally).
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_tenant_branch", "tenant_id", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    # Denormalized aggregates
    total_spent = db.Column(db.Numeric(14, 2, asdecimal=True), nullable=False, default=Decimal("0.00"))
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    average_order_value = db.Column(db.Numeric(14, 2, asdecimal=True), nullable=False, default=Decimal("0.00"))
    last_order_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "branchId": self.branch_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "totalSpent": money_to_json(self.total_spent),
            "totalOrders": self.total_orders,
            "averageOrderValue": money_to_json(self.average_order_value),
            "lastOrderDate": to_iso_date(self.last_order_date),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
