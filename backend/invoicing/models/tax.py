from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class TaxRate(db.Model):
    """
    Named tax rate (percent, e.g. 18 for GST 18%).

    branch_id NULL means the rate applies to every branch of the tenant.
    The active default for a branch is used when an invoice omits taxRate.
    """
    __tablename__ = "tax_rates"
    __table_args__ = (
        db.Index("ix_tax_rates_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    name = db.Column(db.String(64), nullable=False)
    rate = db.Column(db.Numeric(7, 4, asdecimal=True), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "branchId": self.branch_id,
            "name": self.name,
            "rate": float(self.rate),
            "description": self.description,
            "isDefault": self.is_default,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
        }
