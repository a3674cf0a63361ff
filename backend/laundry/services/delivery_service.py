# Overview: Delivery Workflow: clean-item shipments from laundry to hotel.

"""
Delivery Workflow

LIFECYCLE (forward only, one step at a time):
    created -> label_printed -> packaged -> picked_up -> delivered
    any open state -> cancelled

ITEM STATUS PER DELIVERY STATE:
    created        items stay ready_for_delivery (claimed)
    label_printed  label_printed
    packaged       packaged
    picked_up      in_transit
    delivered      at_hotel (wash_count unchanged)
    cancelled      back to ready_for_delivery

RULES:
1. Creation is all-or-nothing: every item must exist, belong to the tenant,
   be ready_for_delivery and not sit in another open delivery.
2. Each transition guards its source state; a wrong source state raises
   InvalidStateError and writes nothing.
3. The delivery row and all member items change in one transaction.
4. Accounting sync and notifications run after commit and cannot undo a
   delivery.
"""

from __future__ import annotations

import json
import math
import secrets
from collections import Counter
from typing import Iterable, Optional

from flask import current_app

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db, events
from ..models import Delivery, DeliveryItem, DeliveryPackage, Item
from ..models.deliveries import (
    DELIVERY_STATUS_CANCELLED,
    DELIVERY_STATUS_CREATED,
    DELIVERY_STATUS_DELIVERED,
    DELIVERY_STATUS_LABEL_PRINTED,
    DELIVERY_STATUS_PACKAGED,
    DELIVERY_STATUS_PICKED_UP,
    DELIVERY_STATUSES,
    OPEN_DELIVERY_STATUSES,
    PACKAGE_STATUS_CREATED,
    PACKAGE_STATUS_SCANNED,
)
from ..models.items import (
    ITEM_STATUS_AT_HOTEL,
    ITEM_STATUS_IN_TRANSIT,
    ITEM_STATUS_LABEL_PRINTED,
    ITEM_STATUS_PACKAGED,
    ITEM_STATUS_READY,
)
from ..time_utils import base36_stamp, utcnow
from ..validation import coordinate_value
from .audit_service import append_audit_entry
from .concurrency import lock_for_update, run_in_transaction
from .item_service import apply_status, claim_items, load_items_for_update, open_delivery_claims
from .sequence_service import next_delivery_barcode
from .tenant_service import get_tenant, require_active_tenant

EARTH_RADIUS_METERS = 6371000.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points, in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def item_type_breakdown(items: Iterable[Item]) -> list[dict]:
    counts = Counter(item.item_type_id for item in items)
    return [{"item_type_id": type_id, "count": counts[type_id]} for type_id in sorted(counts)]


def generate_bag_code() -> str:
    """Transport bag label: BAG-<stamp>-<random>."""
    return f"BAG-{base36_stamp()}-{secrets.token_hex(2).upper()}"


# =============================================================================
# Creation
# =============================================================================

def create_delivery(
    tenant_id: int,
    item_ids: Iterable[int],
    *,
    package_count: int = 1,
    notes: Optional[str] = None,
) -> Delivery:
    """
    Create a delivery for ready items of one hotel.

    Allocates the next sequential barcode and one DeliveryPackage per parcel
    ("{barcode}-PKG{n}"). When notes are omitted the item-type breakdown is
    stored there as JSON for the label.

    Raises:
        ValidationError: package_count < 1 or no items
        NotFoundError: unknown tenant or item
        InvalidStateError: inactive tenant; item of another tenant, not
            ready_for_delivery, or already in an open delivery
    """
    if isinstance(package_count, bool) or not isinstance(package_count, int) or package_count < 1:
        raise ValidationError("package_count must be an integer >= 1", field="package_count")
    ids = list(dict.fromkeys(item_ids or []))
    if not ids:
        raise ValidationError("A delivery needs at least one item", field="item_ids")

    def _op():
        require_active_tenant(tenant_id)
        items = load_items_for_update(ids)

        foreign = [item.id for item in items if item.tenant_id != tenant_id]
        if foreign:
            raise InvalidStateError(
                f"Items {foreign} do not belong to tenant {tenant_id}",
                tenant_id=tenant_id,
                item_ids=foreign,
            )
        not_ready = [item.id for item in items if item.status != ITEM_STATUS_READY]
        if not_ready:
            raise InvalidStateError(
                f"Items {not_ready} are not ready for delivery",
                item_ids=not_ready,
            )
        claims = open_delivery_claims(ids)
        if claims:
            raise InvalidStateError(
                f"Items {sorted(claims)} are already in an open delivery",
                claims={str(k): v for k, v in claims.items()},
            )
        claim_items(items)

        barcode = next_delivery_barcode()
        delivery = Delivery(
            tenant_id=tenant_id,
            barcode=barcode,
            status=DELIVERY_STATUS_CREATED,
            package_count=package_count,
            notes=notes if notes is not None else json.dumps(item_type_breakdown(items)),
        )
        for position, item in enumerate(items):
            delivery.delivery_items.append(DeliveryItem(item_id=item.id, position=position))
        for seq in range(1, package_count + 1):
            delivery.packages.append(DeliveryPackage(
                package_barcode=f"{barcode}-PKG{seq}",
                sequence_number=seq,
                status=PACKAGE_STATUS_CREATED,
            ))
        db.session.add(delivery)
        db.session.flush()

        append_audit_entry(
            tenant_id=tenant_id,
            event_type="delivery.created",
            entity_type="delivery",
            entity_id=delivery.id,
            note=barcode,
            payload={"item_ids": ids, "package_count": package_count},
        )
        events.emit(
            "delivery.created",
            tenant_id,
            delivery_id=delivery.id,
            barcode=barcode,
            item_count=len(items),
        )
        return delivery

    delivery = run_in_transaction(_op)
    current_app.logger.info("Delivery %s (%s) created with %d items", delivery.id, delivery.barcode, len(ids))
    return delivery


# =============================================================================
# Forward transitions
# =============================================================================

def _lock_delivery(delivery_id: int) -> Delivery:
    delivery = lock_for_update(db.session.query(Delivery).filter(Delivery.id == delivery_id)).first()
    if delivery is None:
        raise NotFoundError(f"Delivery {delivery_id} not found", delivery_id=delivery_id)
    return delivery


def _require_status(delivery: Delivery, expected: str, action: str) -> None:
    if delivery.status != expected:
        raise InvalidStateError(
            f"Cannot {action} delivery {delivery.id}: status is {delivery.status}, expected {expected}",
            delivery_id=delivery.id,
            status=delivery.status,
            expected=expected,
        )


def _advance(delivery: Delivery, new_status: str, item_status: str, stamp_field: str, **extra) -> list[Item]:
    """Move the delivery and every member item one step. Caller holds the lock."""
    items = load_items_for_update(delivery.item_ids)
    for item in items:
        apply_status(item, item_status)
    delivery.status = new_status
    setattr(delivery, stamp_field, utcnow())

    append_audit_entry(
        tenant_id=delivery.tenant_id,
        event_type=f"delivery.{new_status}",
        entity_type="delivery",
        entity_id=delivery.id,
        note=delivery.barcode,
    )
    events.emit(
        f"delivery.{new_status}",
        delivery.tenant_id,
        delivery_id=delivery.id,
        barcode=delivery.barcode,
        bag_code=delivery.bag_code,
        item_count=len(items),
        **extra,
    )
    return items


def _transition(delivery_id: int, expected: str, new_status: str, item_status: str, stamp_field: str, action: str):
    def _op():
        delivery = _lock_delivery(delivery_id)
        _require_status(delivery, expected, action)
        _advance(delivery, new_status, item_status, stamp_field)
        return delivery

    delivery = run_in_transaction(_op)
    current_app.logger.info("Delivery %s -> %s", delivery.id, new_status)
    return delivery


def print_label(delivery_id: int) -> Delivery:
    """created -> label_printed"""
    return _transition(
        delivery_id,
        DELIVERY_STATUS_CREATED,
        DELIVERY_STATUS_LABEL_PRINTED,
        ITEM_STATUS_LABEL_PRINTED,
        "label_printed_at",
        "print label for",
    )


def package_delivery(delivery_id: int) -> Delivery:
    """label_printed -> packaged"""
    return _transition(
        delivery_id,
        DELIVERY_STATUS_LABEL_PRINTED,
        DELIVERY_STATUS_PACKAGED,
        ITEM_STATUS_PACKAGED,
        "packaged_at",
        "package",
    )


def _pick_up(delivery: Delivery) -> list[Item]:
    _require_status(delivery, DELIVERY_STATUS_PACKAGED, "pick up")
    return _advance(delivery, DELIVERY_STATUS_PICKED_UP, ITEM_STATUS_IN_TRANSIT, "picked_up_at")


def pickup_delivery(delivery_id: int) -> Delivery:
    """packaged -> picked_up (driver takes custody; items in_transit)."""
    def _op():
        delivery = _lock_delivery(delivery_id)
        _pick_up(delivery)
        return delivery

    delivery = run_in_transaction(_op)
    current_app.logger.info("Delivery %s -> %s", delivery.id, DELIVERY_STATUS_PICKED_UP)
    return delivery


def scan_package(package_barcode: str) -> dict:
    """
    Driver scans one parcel while loading.

    The delivery must be packaged. Scanning the last unscanned parcel runs
    the picked_up transition in the same transaction. Rescanning a parcel
    that is already scanned only reports the counts, also once the delivery
    is picked_up; any other delivery status raises InvalidStateError.

    Returns:
        dict: package, delivery, all_packages_scanned, total_packages, scanned_packages
    """
    code = (package_barcode or "").strip()
    if not code:
        raise ValidationError("package_barcode is required", field="package_barcode")

    def _op():
        pkg = db.session.query(DeliveryPackage).filter(DeliveryPackage.package_barcode == code).first()
        if pkg is None:
            raise NotFoundError(f"Package {code} not found", package_barcode=code)

        delivery = _lock_delivery(pkg.delivery_id)
        rescan_in_transit = (
            pkg.status == PACKAGE_STATUS_SCANNED and delivery.status == DELIVERY_STATUS_PICKED_UP
        )
        if not rescan_in_transit:
            _require_status(delivery, DELIVERY_STATUS_PACKAGED, "scan a package of")

        if pkg.status != PACKAGE_STATUS_SCANNED:
            pkg.status = PACKAGE_STATUS_SCANNED
            pkg.scanned_at = utcnow()
        db.session.flush()

        scanned = sum(1 for p in delivery.packages if p.status == PACKAGE_STATUS_SCANNED)
        all_scanned = scanned == len(delivery.packages)
        if all_scanned and not rescan_in_transit:
            _pick_up(delivery)

        return {
            "package": pkg,
            "delivery": delivery,
            "all_packages_scanned": all_scanned,
            "total_packages": len(delivery.packages),
            "scanned_packages": scanned,
        }

    return run_in_transaction(_op)


def _check_proximity(delivery: Delivery, latitude, longitude) -> None:
    max_distance = current_app.config.get("DELIVERY_MAX_DISTANCE_METERS")
    if max_distance is None:
        return
    if latitude is None or longitude is None:
        current_app.logger.warning("No driver location for delivery %s", delivery.id)
        return
    tenant = get_tenant(delivery.tenant_id)
    if tenant.latitude is None or tenant.longitude is None:
        current_app.logger.warning(
            "Tenant %s has no coordinates; skipping proximity check for delivery %s",
            tenant.id,
            delivery.id,
        )
        return

    distance = haversine_distance(latitude, longitude, tenant.latitude, tenant.longitude)
    if distance > max_distance:
        raise ValidationError(
            f"Driver is {distance:.0f} m from the hotel (maximum {max_distance:.0f} m)",
            distance=round(distance),
            max_distance=max_distance,
        )


def _deliver(delivery: Delivery, latitude, longitude, address) -> list[Item]:
    _require_status(delivery, DELIVERY_STATUS_PICKED_UP, "deliver")
    _check_proximity(delivery, latitude, longitude)

    delivery.delivery_latitude = latitude
    delivery.delivery_longitude = longitude
    delivery.delivery_address = address
    items = load_items_for_update(delivery.item_ids)
    # Accounting subscribes to delivery.delivered and needs the per-type counts
    return _advance(
        delivery,
        DELIVERY_STATUS_DELIVERED,
        ITEM_STATUS_AT_HOTEL,
        "delivered_at",
        item_type_counts=item_type_breakdown(items),
    )


def deliver(
    delivery_id: int,
    *,
    latitude=None,
    longitude=None,
    address: Optional[str] = None,
) -> Delivery:
    """
    picked_up -> delivered: items are back at the hotel.

    wash_count is not touched here; a wash is counted once, on pickup
    reception. When both the driver location and the hotel coordinates are
    known, the driver must be within DELIVERY_MAX_DISTANCE_METERS.
    """
    latitude = coordinate_value(latitude, "latitude")
    longitude = coordinate_value(longitude, "longitude")

    def _op():
        delivery = _lock_delivery(delivery_id)
        _deliver(delivery, latitude, longitude, address)
        return delivery

    delivery = run_in_transaction(_op)
    current_app.logger.info("Delivery %s delivered", delivery.id)
    return delivery


def cancel_delivery(delivery_id: int, reason: Optional[str] = None) -> Delivery:
    """
    Cancel an open delivery; member items return to ready_for_delivery.

    The record is kept (status cancelled) so the history stays auditable.
    """
    def _op():
        delivery = _lock_delivery(delivery_id)
        if delivery.status not in OPEN_DELIVERY_STATUSES:
            raise InvalidStateError(
                f"Cannot cancel delivery {delivery.id}: status is {delivery.status}",
                delivery_id=delivery.id,
                status=delivery.status,
            )
        previous = delivery.status
        delivery.cancellation_reason = reason
        _advance(delivery, DELIVERY_STATUS_CANCELLED, ITEM_STATUS_READY, "cancelled_at")
        current_app.logger.info("Delivery %s cancelled from %s", delivery.id, previous)
        return delivery

    return run_in_transaction(_op)


# =============================================================================
# Transport bags
# =============================================================================

def create_delivery_bag(delivery_ids: Iterable[int]) -> dict:
    """Group open deliveries under one generated BAG- code."""
    ids = list(dict.fromkeys(delivery_ids or []))
    if not ids:
        raise ValidationError("delivery_ids must be a non-empty list", field="delivery_ids")

    def _op():
        rows = lock_for_update(
            db.session.query(Delivery).filter(Delivery.id.in_(ids)).order_by(Delivery.id)
        ).all()
        found = {d.id for d in rows}
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFoundError(f"Deliveries not found: {missing}", delivery_ids=missing)
        closed = [d.id for d in rows if not d.is_open]
        if closed:
            raise InvalidStateError(f"Deliveries {closed} are already closed", delivery_ids=closed)

        bag_code = generate_bag_code()
        for d in rows:
            d.bag_code = bag_code
        return {"bag_code": bag_code, "delivery_count": len(rows), "deliveries": rows}

    return run_in_transaction(_op)


def get_bag_deliveries(bag_code: str) -> list[Delivery]:
    rows = (
        db.session.query(Delivery)
        .filter(Delivery.bag_code == (bag_code or "").strip())
        .order_by(Delivery.id)
        .all()
    )
    if not rows:
        raise NotFoundError(f"Bag {bag_code!r} not found", bag_code=bag_code)
    return rows


def deliver_bag(
    bag_code: str,
    *,
    latitude=None,
    longitude=None,
    address: Optional[str] = None,
) -> list[Delivery]:
    """Deliver every picked_up delivery in a bag in one transaction."""
    code = (bag_code or "").strip()
    latitude = coordinate_value(latitude, "latitude")
    longitude = coordinate_value(longitude, "longitude")

    def _op():
        rows = lock_for_update(
            db.session.query(Delivery)
            .filter(Delivery.bag_code == code, Delivery.status == DELIVERY_STATUS_PICKED_UP)
            .order_by(Delivery.id)
        ).all()
        if not rows:
            raise NotFoundError(f"No picked-up deliveries in bag {code!r}", bag_code=code)
        for delivery in rows:
            _deliver(delivery, latitude, longitude, address)
        return rows

    rows = run_in_transaction(_op)
    current_app.logger.info("Bag %s delivered (%d deliveries)", code, len(rows))
    return rows


# =============================================================================
# Lookups
# =============================================================================

def get_delivery(delivery_id: int) -> Delivery:
    delivery = db.session.get(Delivery, delivery_id)
    if delivery is None:
        raise NotFoundError(f"Delivery {delivery_id} not found", delivery_id=delivery_id)
    return delivery


def get_delivery_by_barcode(barcode: str) -> Delivery:
    """Accepts a delivery barcode or one of its package barcodes."""
    code = (barcode or "").strip()
    delivery = db.session.query(Delivery).filter(Delivery.barcode == code).first()
    if delivery is None:
        pkg = db.session.query(DeliveryPackage).filter(DeliveryPackage.package_barcode == code).first()
        if pkg is not None:
            delivery = pkg.delivery
    if delivery is None:
        raise NotFoundError(f"Delivery with barcode {barcode!r} not found", barcode=barcode)
    return delivery


def list_deliveries(
    *,
    tenant_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 100,
) -> list[Delivery]:
    q = db.session.query(Delivery)
    if tenant_id is not None:
        q = q.filter(Delivery.tenant_id == tenant_id)
    if status is not None:
        if status not in DELIVERY_STATUSES:
            raise ValidationError(f"Invalid delivery status '{status}'", status=status)
        q = q.filter(Delivery.status == status)
    return q.order_by(Delivery.id.desc()).limit(limit).all()
