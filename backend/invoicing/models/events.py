from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z


class LedgerEvent(db.Model):
    """
    Append-only audit log of ledger mutations.

    invoice_id / payment_id are plain values, not foreign keys, so the trail
    survives invoice deletion. Records are never updated or deleted.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_tenant_invoice", "tenant_id", "invoice_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    invoice_id = db.Column(db.String(36), nullable=True)
    payment_id = db.Column(db.String(36), nullable=True, index=True)

    amount = db.Column(db.Numeric(12, 2, asdecimal=True), nullable=True)
    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=True)

    actor_user_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "branchId": self.branch_id,
            "eventType": self.event_type,
            "invoiceId": self.invoice_id,
            "paymentId": self.payment_id,
            "amount": money_to_json(self.amount),
            "fromStatus": self.from_status,
            "toStatus": self.to_status,
            "actorUserId": self.actor_user_id,
            "note": self.note,
            "occurredAt": to_utc_z(self.occurred_at),
        }
