# Overview: Pickup Workflow: dirty-item bags from hotel to laundry (created -> received).

"""
Pickup Workflow

A pickup is one sealed bag of dirty items collected from one hotel.

LIFECYCLE:
    created  -> received

RULES:
1. Membership is fixed at creation; an item can sit in at most one open
   (created) pickup. The claim check runs in the same transaction as the
   insert, with member items locked and written, so a concurrent claim
   of the same item fails its version check.
2. receive_pickup() moves every member to at_laundry and counts exactly one
   wash per item, all or nothing.
3. Bag codes are unique system-wide.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db, events
from ..models import Pickup, PickupItem
from ..models.items import ITEM_STATUS_AT_LAUNDRY
from ..models.pickups import PICKUP_STATUS_CREATED, PICKUP_STATUS_RECEIVED, PICKUP_STATUSES
from ..time_utils import base36_stamp, utcnow
from .audit_service import append_audit_entry
from .concurrency import lock_for_update, run_in_transaction
from .item_service import apply_status, claim_items, load_items_for_update, open_pickup_claims
from .scan_service import scan
from .tenant_service import require_active_tenant


@dataclass
class PickupFromTagsResult:
    pickup: Pickup
    not_found_tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        body = self.pickup.to_dict()
        body["not_found_tags"] = list(self.not_found_tags)
        return body


def generate_pickup_bag_code() -> str:
    """Bag label for pickups created straight from a scan: PU-<stamp>-<random>."""
    return f"PU-{base36_stamp()}-{secrets.token_hex(3).upper()}"


def _create_pickup(tenant_id, bag_code, item_ids, seal_number, notes) -> Pickup:
    require_active_tenant(tenant_id)

    if db.session.query(Pickup.id).filter(Pickup.bag_code == bag_code).first() is not None:
        raise ConflictError(f"Bag code {bag_code} already exists", bag_code=bag_code)

    items = load_items_for_update(item_ids)

    foreign = [item.id for item in items if item.tenant_id != tenant_id]
    if foreign:
        raise InvalidStateError(
            f"Items {foreign} do not belong to tenant {tenant_id}",
            tenant_id=tenant_id,
            item_ids=foreign,
        )

    claims = open_pickup_claims([item.id for item in items])
    if claims:
        raise InvalidStateError(
            f"Items {sorted(claims)} are already in an open pickup",
            claims={str(k): v for k, v in claims.items()},
        )
    claim_items(items)

    pickup = Pickup(
        tenant_id=tenant_id,
        bag_code=bag_code,
        seal_number=seal_number,
        status=PICKUP_STATUS_CREATED,
        notes=notes,
    )
    for position, item in enumerate(items):
        pickup.pickup_items.append(PickupItem(item_id=item.id, position=position))
    db.session.add(pickup)
    try:
        db.session.flush()
    except IntegrityError:
        raise ConflictError(f"Bag code {bag_code} already exists", bag_code=bag_code)

    append_audit_entry(
        tenant_id=tenant_id,
        event_type="pickup.created",
        entity_type="pickup",
        entity_id=pickup.id,
        note=bag_code,
        payload={"item_ids": pickup.item_ids},
    )
    events.emit("pickup.created", tenant_id, pickup_id=pickup.id, bag_code=bag_code, item_count=len(items))
    return pickup


def create_pickup(
    tenant_id: int,
    bag_code: str,
    item_ids: Optional[Iterable[int]] = None,
    *,
    seal_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> Pickup:
    """
    Open a pickup bag for a hotel.

    An empty item list is a "quick pickup": the bag is logged before its
    contents are known.

    Raises:
        ValidationError: missing bag code
        ConflictError: bag code already used
        NotFoundError: an item id does not exist
        InvalidStateError: item of another tenant, or already in an open pickup
    """
    bag_code = (bag_code or "").strip()
    if not bag_code:
        raise ValidationError("bag_code is required", field="bag_code")
    ids = list(dict.fromkeys(item_ids or []))

    pickup = run_in_transaction(lambda: _create_pickup(tenant_id, bag_code, ids, seal_number, notes))
    current_app.logger.info("Pickup %s (%s) created with %d items", pickup.id, bag_code, len(ids))
    return pickup


def create_pickup_from_tags(
    tenant_id: int,
    rfid_tags: Iterable[str],
    *,
    notes: Optional[str] = None,
) -> PickupFromTagsResult:
    """
    Reconcile a driver's scan and open a pickup for the recognised items.

    Unknown tags are reported back, not fatal. A tag registered to another
    hotel rejects the whole bag.
    """
    tags = list(rfid_tags or [])

    def _op():
        scanned = scan(tags)
        foreign = [item.rfid_tag for item in scanned.items if item.tenant_id != tenant_id]
        if foreign:
            raise InvalidStateError(
                f"Tags belong to another tenant: {', '.join(foreign)}",
                tenant_id=tenant_id,
                rfid_tags=foreign,
            )
        pickup = _create_pickup(
            tenant_id,
            generate_pickup_bag_code(),
            [item.id for item in scanned.items],
            None,
            notes,
        )
        return PickupFromTagsResult(pickup=pickup, not_found_tags=scanned.not_found_tags)

    return run_in_transaction(_op)


def receive_pickup(pickup_id: int) -> Pickup:
    """
    Mark a pickup received at the laundry.

    Every member item goes to at_laundry and its wash_count increases by
    exactly one. Partial reception is never visible.

    Raises:
        NotFoundError: unknown pickup
        InvalidStateError: pickup is not in created state
    """
    def _op():
        pickup = lock_for_update(db.session.query(Pickup).filter(Pickup.id == pickup_id)).first()
        if pickup is None:
            raise NotFoundError(f"Pickup {pickup_id} not found", pickup_id=pickup_id)
        if pickup.status != PICKUP_STATUS_CREATED:
            raise InvalidStateError(
                f"Pickup {pickup_id} cannot be received (status: {pickup.status})",
                pickup_id=pickup_id,
                status=pickup.status,
            )

        items = load_items_for_update(pickup.item_ids)
        for item in items:
            apply_status(item, ITEM_STATUS_AT_LAUNDRY, count_wash=True)

        pickup.status = PICKUP_STATUS_RECEIVED
        pickup.received_at = utcnow()

        append_audit_entry(
            tenant_id=pickup.tenant_id,
            event_type="pickup.received",
            entity_type="pickup",
            entity_id=pickup.id,
            note=pickup.bag_code,
        )
        events.emit(
            "pickup.received",
            pickup.tenant_id,
            pickup_id=pickup.id,
            bag_code=pickup.bag_code,
            item_count=len(items),
        )
        return pickup

    pickup = run_in_transaction(_op)
    current_app.logger.info("Pickup %s received (%d items)", pickup.id, len(pickup.pickup_items))
    return pickup


def get_pickup(pickup_id: int) -> Pickup:
    pickup = db.session.get(Pickup, pickup_id)
    if pickup is None:
        raise NotFoundError(f"Pickup {pickup_id} not found", pickup_id=pickup_id)
    return pickup


def get_pickup_by_bag_code(bag_code: str) -> Pickup:
    pickup = db.session.query(Pickup).filter(Pickup.bag_code == (bag_code or "").strip()).first()
    if pickup is None:
        raise NotFoundError(f"Pickup with bag code {bag_code!r} not found", bag_code=bag_code)
    return pickup


def list_pickups(
    *,
    tenant_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 100,
) -> list[Pickup]:
    q = db.session.query(Pickup)
    if tenant_id is not None:
        q = q.filter(Pickup.tenant_id == tenant_id)
    if status is not None:
        if status not in PICKUP_STATUSES:
            raise ValidationError(f"Invalid pickup status '{status}'", status=status)
        q = q.filter(Pickup.status == status)
    return q.order_by(Pickup.id.desc()).limit(limit).all()
