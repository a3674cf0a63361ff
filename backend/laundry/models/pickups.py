from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PICKUP_STATUS_CREATED = "created"
PICKUP_STATUS_RECEIVED = "received"

PICKUP_STATUSES = (PICKUP_STATUS_CREATED, PICKUP_STATUS_RECEIVED)
OPEN_PICKUP_STATUSES = (PICKUP_STATUS_CREATED,)


class Pickup(db.Model):
    """
    One physical bag of dirty items collected from one hotel.

    LIFECYCLE:
    1. created: bag sealed at the hotel, items claimed
    2. received: bag opened at the laundry, members moved to at_laundry

    Membership is recorded at creation and never changes afterwards.
    """
    __tablename__ = "pickups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    # Physical bag label
    bag_code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    seal_number = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PICKUP_STATUS_CREATED, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    tenant = db.relationship("Tenant")
    pickup_items = db.relationship(
        "PickupItem",
        order_by="PickupItem.position",
        cascade="all, delete-orphan",
        back_populates="pickup",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def item_ids(self) -> list[int]:
        return [pi.item_id for pi in self.pickup_items]

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_PICKUP_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "bag_code": self.bag_code,
            "seal_number": self.seal_number,
            "status": self.status,
            "notes": self.notes,
            "item_ids": self.item_ids,
            "item_count": len(self.pickup_items),
            "created_at": to_utc_z(self.created_at),
            "received_at": to_utc_z(self.received_at),
        }


class PickupItem(db.Model):
    __tablename__ = "pickup_items"
    __table_args__ = (
        db.UniqueConstraint("pickup_id", "item_id", name="uq_pickup_items_pickup_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    pickup_id = db.Column(db.Integer, db.ForeignKey("pickups.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    pickup = db.relationship("Pickup", back_populates="pickup_items")
    item = db.relationship("Item")
