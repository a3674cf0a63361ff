from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


DELIVERY_STATUS_CREATED = "created"
DELIVERY_STATUS_LABEL_PRINTED = "label_printed"
DELIVERY_STATUS_PACKAGED = "packaged"
DELIVERY_STATUS_PICKED_UP = "picked_up"
DELIVERY_STATUS_DELIVERED = "delivered"
DELIVERY_STATUS_CANCELLED = "cancelled"

DELIVERY_STATUSES = (
    DELIVERY_STATUS_CREATED,
    DELIVERY_STATUS_LABEL_PRINTED,
    DELIVERY_STATUS_PACKAGED,
    DELIVERY_STATUS_PICKED_UP,
    DELIVERY_STATUS_DELIVERED,
    DELIVERY_STATUS_CANCELLED,
)
CLOSED_DELIVERY_STATUSES = (DELIVERY_STATUS_DELIVERED, DELIVERY_STATUS_CANCELLED)
OPEN_DELIVERY_STATUSES = tuple(s for s in DELIVERY_STATUSES if s not in CLOSED_DELIVERY_STATUSES)

PACKAGE_STATUS_CREATED = "created"
PACKAGE_STATUS_SCANNED = "scanned"


class Delivery(db.Model):
    """
    One outgoing clean-laundry shipment to one hotel.

    LIFECYCLE (forward only, no skipping):
    1. created: items claimed, barcode allocated
    2. label_printed: package label printed
    3. packaged: parcels sealed on the laundry floor
    4. picked_up: driver custody (items in_transit)
    5. delivered: handed over at the hotel (items back at_hotel)
    cancelled: reachable from any open state; members return to the pool.
    """
    __tablename__ = "deliveries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    # Physical identity of the outgoing package (e.g., "000000042")
    barcode = db.Column(db.String(64), nullable=False, unique=True, index=True)
    status = db.Column(db.String(16), nullable=False, default=DELIVERY_STATUS_CREATED, index=True)
    package_count = db.Column(db.Integer, nullable=False, default=1)
    notes = db.Column(db.Text, nullable=True)

    # Several deliveries can travel in one transport bag
    bag_code = db.Column(db.String(64), nullable=True, index=True)

    # Captured only at the delivered transition
    delivery_latitude = db.Column(db.Float, nullable=True)
    delivery_longitude = db.Column(db.Float, nullable=True)
    delivery_address = db.Column(db.Text, nullable=True)

    # Timestamps for each lifecycle stage
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    label_printed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    packaged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    picked_up_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    tenant = db.relationship("Tenant")
    delivery_items = db.relationship(
        "DeliveryItem",
        order_by="DeliveryItem.position",
        cascade="all, delete-orphan",
        back_populates="delivery",
    )
    packages = db.relationship(
        "DeliveryPackage",
        order_by="DeliveryPackage.sequence_number",
        cascade="all, delete-orphan",
        back_populates="delivery",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def item_ids(self) -> list[int]:
        return [di.item_id for di in self.delivery_items]

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_DELIVERY_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "barcode": self.barcode,
            "status": self.status,
            "package_count": self.package_count,
            "notes": self.notes,
            "bag_code": self.bag_code,
            "item_ids": self.item_ids,
            "item_count": len(self.delivery_items),
            "packages": [p.to_dict() for p in self.packages],
            "delivery_latitude": self.delivery_latitude,
            "delivery_longitude": self.delivery_longitude,
            "delivery_address": self.delivery_address,
            "created_at": to_utc_z(self.created_at),
            "label_printed_at": to_utc_z(self.label_printed_at),
            "packaged_at": to_utc_z(self.packaged_at),
            "picked_up_at": to_utc_z(self.picked_up_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
        }


class DeliveryItem(db.Model):
    __tablename__ = "delivery_items"
    __table_args__ = (
        db.UniqueConstraint("delivery_id", "item_id", name="uq_delivery_items_delivery_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    delivery = db.relationship("Delivery", back_populates="delivery_items")
    item = db.relationship("Item")


class DeliveryPackage(db.Model):
    """
    One physical parcel of a delivery ("{barcode}-PKG{n}").

    The driver scans every parcel when loading; the delivery moves to
    picked_up once the last parcel is scanned.
    """
    __tablename__ = "delivery_packages"
    __table_args__ = (
        db.UniqueConstraint("delivery_id", "sequence_number", name="uq_delivery_packages_seq"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=False, index=True)
    package_barcode = db.Column(db.String(80), nullable=False, unique=True, index=True)
    sequence_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PACKAGE_STATUS_CREATED)
    scanned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    delivery = db.relationship("Delivery", back_populates="packages")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_id": self.delivery_id,
            "package_barcode": self.package_barcode,
            "sequence_number": self.sequence_number,
            "status": self.status,
            "scanned_at": to_utc_z(self.scanned_at),
        }
