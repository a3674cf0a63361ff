from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class AuditEntry(db.Model):
    """
    Append-only audit trail for workflow transitions.

    Entries are written inside the same DB transaction as the transition
    they record, so a rolled-back transition leaves no audit entry behind.
    occurred_at is business time; created_at is system time.
    """
    __tablename__ = "audit_entries"
    __table_args__ = (
        db.Index("ix_audit_entries_tenant_occurred", "tenant_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., pickup.received
    entity_type = db.Column(db.String(32), nullable=False, index=True)  # item, pickup, delivery, tenant
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }


class BarcodeSequence(db.Model):
    """
    Atomic named counters.

    WHY: Two packers creating deliveries at the same moment must never be
    handed the same barcode.
    """
    __tablename__ = "barcode_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
