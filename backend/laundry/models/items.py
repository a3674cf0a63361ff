from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# Item lifecycle, in the order an item normally cycles through.
# "delivered" is equivalent to a fresh "at_hotel": there is no terminal
# state for a healthy item.
ITEM_STATUS_AT_HOTEL = "at_hotel"
ITEM_STATUS_AT_LAUNDRY = "at_laundry"
ITEM_STATUS_PROCESSING = "processing"
ITEM_STATUS_READY = "ready_for_delivery"
ITEM_STATUS_LABEL_PRINTED = "label_printed"
ITEM_STATUS_PACKAGED = "packaged"
ITEM_STATUS_IN_TRANSIT = "in_transit"
ITEM_STATUS_DELIVERED = "delivered"

ITEM_STATUSES = (
    ITEM_STATUS_AT_HOTEL,
    ITEM_STATUS_AT_LAUNDRY,
    ITEM_STATUS_PROCESSING,
    ITEM_STATUS_READY,
    ITEM_STATUS_LABEL_PRINTED,
    ITEM_STATUS_PACKAGED,
    ITEM_STATUS_IN_TRANSIT,
    ITEM_STATUS_DELIVERED,
)

# Items waiting to be washed ("dirty") at the laundry
DIRTY_STATUSES = (ITEM_STATUS_AT_LAUNDRY, ITEM_STATUS_PROCESSING)


class Item(db.Model):
    """
    One physical RFID-tagged textile unit.

    The item row is the single source of truth for where the item is right
    now. Pickup/Delivery membership is a historical association, never
    ownership.

    CONCURRENCY: version_id is an optimistic version column. Two writers
    that both read the same version cannot both commit; the loser gets
    StaleDataError and is retried by the unit of work.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    item_type_id = db.Column(db.Integer, nullable=False, index=True)

    # Physical identity: globally unique and immutable after creation
    rfid_tag = db.Column(db.String(128), nullable=False, unique=True, index=True)

    status = db.Column(db.String(32), nullable=False, default=ITEM_STATUS_AT_HOTEL, index=True)
    wash_count = db.Column(db.Integer, nullable=False, default=0)
    last_wash_date = db.Column(db.DateTime(timezone=True), nullable=True)

    is_damaged = db.Column(db.Boolean, nullable=False, default=False)
    is_stained = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("items", lazy="dynamic"))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Item id={self.id} rfid_tag={self.rfid_tag!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "item_type_id": self.item_type_id,
            "rfid_tag": self.rfid_tag,
            "status": self.status,
            "wash_count": self.wash_count,
            "last_wash_date": to_utc_z(self.last_wash_date),
            "is_damaged": self.is_damaged,
            "is_stained": self.is_stained,
            "notes": self.notes,
            "location": self.location,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Alert(db.Model):
    """
    Operator-attention flag raised when an item is marked damaged or stained.

    Alerts never block a transition: a damaged item can still be washed and
    redelivered.
    """
    __tablename__ = "alerts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True, index=True)

    alert_type = db.Column(db.String(32), nullable=False, index=True)  # damaged_item, stained_item
    severity = db.Column(db.String(16), nullable=False, default="medium")
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "item_id": self.item_id,
            "alert_type": self.alert_type,
            "severity": self.severity,
            "message": self.message,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
