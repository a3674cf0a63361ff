# Overview: Item Ledger: registration, status primitive, bulk wash transitions, condition flags.

"""
Item Ledger

The item row is the single source of truth for where a physical item is
right now. This module does NOT own a linear transition table: the Pickup
and Delivery workflows are the only drivers of specific transitions and
call apply_status() inside their own unit of work. override_status() is
the administrative override.

STATES (normal cycle):
    at_hotel -> at_laundry -> processing -> ready_for_delivery
             -> label_printed -> packaged -> in_transit -> delivered (== at_hotel)

RULES:
1. One item per RFID tag system-wide (case-insensitive).
2. wash_count only increases, exactly once per pickup reception.
3. Bulk operations (mark_clean, mark_processing, bulk registration) skip and
   report stale entries instead of failing the whole batch.
4. Condition flags never block a transition.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Alert, Delivery, DeliveryItem, Item, Pickup, PickupItem, ScanEvent
from ..models.deliveries import OPEN_DELIVERY_STATUSES
from ..models.items import (
    DIRTY_STATUSES,
    ITEM_STATUS_AT_HOTEL,
    ITEM_STATUS_AT_LAUNDRY,
    ITEM_STATUS_PROCESSING,
    ITEM_STATUS_READY,
    ITEM_STATUSES,
)
from ..models.pickups import OPEN_PICKUP_STATUSES
from ..time_utils import parse_iso_datetime, utcnow
from .audit_service import append_audit_entry
from .concurrency import lock_for_update, run_in_transaction
from .tenant_service import require_active_tenant


@dataclass
class BulkTransitionResult:
    """Outcome of a skip-don't-fail bulk transition."""
    count: int
    skipped: list = field(default_factory=list)
    items: list[Item] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "skipped": list(self.skipped),
            "items": [item.to_dict() for item in self.items],
        }


# mark_clean() returns this shape: {count, skipped}
MarkCleanResult = BulkTransitionResult


@dataclass
class BulkRegisterResult:
    created: list[Item] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "created": len(self.created),
            "failed": len(self.errors),
            "items": [item.to_dict() for item in self.created],
            "errors": list(self.errors),
        }


# =============================================================================
# Tag validation
# =============================================================================

@lru_cache(maxsize=8)
def _tag_regex(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def normalize_tag(tag) -> Optional[str]:
    """Trimmed tag if well-formed, else None. Never raises."""
    if not isinstance(tag, str):
        return None
    tag = tag.strip()
    if not tag:
        return None
    if not _tag_regex(current_app.config["RFID_TAG_PATTERN"]).match(tag):
        return None
    return tag


def validate_rfid_tag(tag) -> str:
    clean = normalize_tag(tag)
    if clean is None:
        raise ValidationError(f"Malformed RFID tag: {tag!r}", rfid_tag=tag)
    return clean


def _find_by_tag(tag: str) -> Optional[Item]:
    item = db.session.query(Item).filter(Item.rfid_tag == tag).first()
    if item is None:
        item = db.session.query(Item).filter(func.upper(Item.rfid_tag) == tag.upper()).first()
    return item


# =============================================================================
# Registration and lookup
# =============================================================================

def _validate_item_type(item_type_id) -> int:
    if isinstance(item_type_id, bool) or not isinstance(item_type_id, int):
        raise ValidationError("item_type_id must be an integer", field="item_type_id")
    return item_type_id


def _new_item(tenant_id: int, item_type_id: int, tag: str, location, notes) -> Item:
    if _find_by_tag(tag) is not None:
        raise ConflictError(f"RFID tag {tag} already exists", rfid_tag=tag)
    item = Item(
        tenant_id=tenant_id,
        item_type_id=item_type_id,
        rfid_tag=tag,
        status=ITEM_STATUS_AT_HOTEL,
        wash_count=0,
        location=location,
        notes=notes,
    )
    db.session.add(item)
    db.session.flush()
    return item


def register_item(
    tenant_id: int,
    item_type_id: int,
    rfid_tag: str,
    *,
    location: str | None = None,
    notes: str | None = None,
) -> Item:
    """
    Register a physical item; it starts its life at the hotel.

    Raises:
        ValidationError: malformed tag or item type
        NotFoundError / InvalidStateError: unknown or inactive tenant
        ConflictError: tag already registered (to any tenant)
    """
    tag = validate_rfid_tag(rfid_tag)
    item_type_id = _validate_item_type(item_type_id)

    def _op():
        require_active_tenant(tenant_id)
        try:
            item = _new_item(tenant_id, item_type_id, tag, location, notes)
        except IntegrityError:
            # Lost a race with a concurrent registration of the same tag
            raise ConflictError(f"RFID tag {tag} already exists", rfid_tag=tag)
        append_audit_entry(
            tenant_id=tenant_id,
            event_type="item.registered",
            entity_type="item",
            entity_id=item.id,
            note=tag,
        )
        return item

    return run_in_transaction(_op)


def register_items_bulk(tenant_id: int, entries: Iterable[dict]) -> BulkRegisterResult:
    """
    Register many items at once; each entry is {"rfid_tag", "item_type_id", ["location", "notes"]}.

    Report-don't-fail: a duplicate or malformed entry is listed in errors and
    the rest are still created. Duplicates inside the same batch are
    reported like duplicates of existing tags.
    """
    entries = list(entries)

    def _op():
        require_active_tenant(tenant_id)
        result = BulkRegisterResult()
        for entry in entries:
            raw_tag = entry.get("rfid_tag")
            try:
                tag = validate_rfid_tag(raw_tag)
                item_type_id = _validate_item_type(entry.get("item_type_id"))
                item = _new_item(tenant_id, item_type_id, tag, entry.get("location"), entry.get("notes"))
            except (ValidationError, ConflictError) as exc:
                result.errors.append({"rfid_tag": raw_tag, "error": exc.message})
                continue
            result.created.append(item)

        if result.created:
            append_audit_entry(
                tenant_id=tenant_id,
                event_type="item.bulk_registered",
                entity_type="tenant",
                entity_id=tenant_id,
                payload={"created": len(result.created), "failed": len(result.errors)},
            )
        return result

    return run_in_transaction(_op)


def get_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFoundError(f"Item {item_id} not found", item_id=item_id)
    return item


def get_item_by_rfid(rfid_tag: str) -> Item:
    """Exact match first, then case-insensitive."""
    tag = normalize_tag(rfid_tag)
    item = _find_by_tag(tag) if tag else None
    if item is None:
        raise NotFoundError(f"Item with RFID tag {rfid_tag!r} not found", rfid_tag=rfid_tag)
    return item


def list_items(
    *,
    tenant_id: int | None = None,
    status: str | None = None,
    item_type_id: int | None = None,
    search: str | None = None,
    updated_since: str | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[Item]:
    q = db.session.query(Item)
    if tenant_id is not None:
        q = q.filter(Item.tenant_id == tenant_id)
    if status is not None:
        _validate_status(status)
        q = q.filter(Item.status == status)
    if item_type_id is not None:
        q = q.filter(Item.item_type_id == item_type_id)
    if search:
        q = q.filter(Item.rfid_tag.ilike(f"%{search.strip()}%"))
    if updated_since:
        try:
            since = parse_iso_datetime(updated_since)
        except ValueError:
            raise ValidationError("updated_since must be an ISO-8601 datetime", field="updated_since")
        q = q.filter(Item.updated_at >= since)
    return q.order_by(Item.id).offset(offset).limit(limit).all()


def list_dirty_items(tenant_id: int | None = None) -> list[Item]:
    """Items waiting at the laundry (at_laundry or processing)."""
    q = db.session.query(Item).filter(Item.status.in_(DIRTY_STATUSES))
    if tenant_id is not None:
        q = q.filter(Item.tenant_id == tenant_id)
    return q.order_by(Item.id).all()


def list_ready_items(tenant_id: int | None = None) -> list[Item]:
    q = db.session.query(Item).filter(Item.status == ITEM_STATUS_READY)
    if tenant_id is not None:
        q = q.filter(Item.tenant_id == tenant_id)
    return q.order_by(Item.id).all()


# =============================================================================
# Status primitive
# =============================================================================

def _validate_status(status: str) -> None:
    if status not in ITEM_STATUSES:
        raise ValidationError(
            f"Invalid item status '{status}'. Must be one of: {', '.join(ITEM_STATUSES)}",
            status=status,
        )


def load_items_for_update(item_ids: Iterable[int]) -> list[Item]:
    """
    Lock the given items (ascending id order) and return them in input order.

    Raises NotFoundError naming every missing id.
    """
    ids = list(dict.fromkeys(item_ids))
    if not ids:
        return []
    rows = lock_for_update(
        db.session.query(Item).filter(Item.id.in_(ids)).order_by(Item.id)
    ).all()
    by_id = {item.id: item for item in rows}
    missing = [i for i in ids if i not in by_id]
    if missing:
        raise NotFoundError(f"Items not found: {missing}", item_ids=missing)
    return [by_id[i] for i in ids]


def claim_items(items: Iterable[Item]) -> None:
    """
    Touch every item joining a new pickup or delivery.

    The write turns the claim check into a versioned UPDATE of each member
    row, so of two batches claiming the same item only one can commit; the
    other gets StaleDataError, retries, and then sees the claim.
    """
    now = utcnow()
    for item in items:
        item.updated_at = now


def apply_status(item: Item, new_status: str, *, count_wash: bool = False) -> Item:
    """
    Write an item's status inside the caller's unit of work.

    count_wash=True is passed only by pickup reception: entering at_laundry
    that way is one physical wash cycle.
    """
    _validate_status(new_status)
    item.status = new_status
    if count_wash and new_status == ITEM_STATUS_AT_LAUNDRY:
        item.wash_count = (item.wash_count or 0) + 1
        item.last_wash_date = utcnow()
    return item


def set_status(item_id: int, new_status: str, *, count_wash: bool = False) -> Item:
    """Lock one item and write its status. Does not commit."""
    _validate_status(new_status)
    item = lock_for_update(db.session.query(Item).filter(Item.id == item_id)).first()
    if item is None:
        raise NotFoundError(f"Item {item_id} not found", item_id=item_id)
    return apply_status(item, new_status, count_wash=count_wash)


def override_status(item_id: int, new_status: str, *, reason: str | None = None) -> Item:
    """Administrative override of one item's status (audited, never counts a wash)."""
    _validate_status(new_status)

    def _op():
        previous = get_item(item_id).status
        item = set_status(item_id, new_status)
        append_audit_entry(
            tenant_id=item.tenant_id,
            event_type="item.status_overridden",
            entity_type="item",
            entity_id=item.id,
            note=reason,
            payload={"from": previous, "to": new_status},
        )
        return item

    return run_in_transaction(_op)


def _bulk_transition(item_ids, from_statuses: tuple, to_status: str, event_type: str) -> BulkTransitionResult:
    ids = list(dict.fromkeys(item_ids))

    def _op():
        result = BulkTransitionResult(count=0)
        for item_id in ids:
            # Row lock + version column make each read-then-write atomic
            item = lock_for_update(db.session.query(Item).filter(Item.id == item_id)).first()
            if item is None or item.status not in from_statuses:
                result.skipped.append(item_id)
                continue
            apply_status(item, to_status)
            result.items.append(item)
        result.count = len(result.items)

        tenants = sorted({item.tenant_id for item in result.items})
        for tenant_id in tenants:
            append_audit_entry(
                tenant_id=tenant_id,
                event_type=event_type,
                entity_type="tenant",
                entity_id=tenant_id,
                payload={"item_ids": [i.id for i in result.items if i.tenant_id == tenant_id]},
            )
        return result

    return run_in_transaction(_op)


def mark_clean(item_ids: Iterable[int]) -> BulkTransitionResult:
    """
    Bulk {at_laundry, processing} -> ready_for_delivery.

    Items in any other state (or unknown ids) are skipped and reported;
    one stale item never aborts a scan-triggered batch.
    """
    return _bulk_transition(item_ids, DIRTY_STATUSES, ITEM_STATUS_READY, "item.marked_clean")


def mark_processing(item_ids: Iterable[int]) -> BulkTransitionResult:
    """Bulk at_laundry -> processing, same skip semantics as mark_clean."""
    return _bulk_transition(item_ids, (ITEM_STATUS_AT_LAUNDRY,), ITEM_STATUS_PROCESSING, "item.processing_started")


# =============================================================================
# Condition flags
# =============================================================================

def set_condition(
    item_id: int,
    *,
    is_damaged: bool | None = None,
    is_stained: bool | None = None,
    notes: str | None = None,
) -> Item:
    """
    Update condition flags independently of status.

    Newly raised flags create an operator alert; nothing is quarantined.
    """
    def _op():
        item = lock_for_update(db.session.query(Item).filter(Item.id == item_id)).first()
        if item is None:
            raise NotFoundError(f"Item {item_id} not found", item_id=item_id)

        raised = []
        if is_damaged is not None:
            if is_damaged and not item.is_damaged:
                raised.append(("damaged_item", "high", f"Item {item.rfid_tag} marked as damaged"))
            item.is_damaged = bool(is_damaged)
        if is_stained is not None:
            if is_stained and not item.is_stained:
                raised.append(("stained_item", "medium", f"Item {item.rfid_tag} marked as stained"))
            item.is_stained = bool(is_stained)
        if notes is not None:
            # An empty string clears the note
            item.notes = notes or None

        for alert_type, severity, message in raised:
            db.session.add(Alert(
                tenant_id=item.tenant_id,
                item_id=item.id,
                alert_type=alert_type,
                severity=severity,
                message=message,
            ))
        db.session.flush()
        return item

    return run_in_transaction(_op)


def list_alerts(tenant_id: int, *, unread_only: bool = False) -> list[Alert]:
    q = db.session.query(Alert).filter(Alert.tenant_id == tenant_id)
    if unread_only:
        q = q.filter(Alert.is_read.is_(False))
    return q.order_by(Alert.id.desc()).all()


# =============================================================================
# Claims and deletion
# =============================================================================

def open_pickup_claims(item_ids: Iterable[int]) -> dict[int, int]:
    """item_id -> id of the open pickup that holds it."""
    ids = list(item_ids)
    if not ids:
        return {}
    rows = (
        db.session.query(PickupItem.item_id, PickupItem.pickup_id)
        .join(Pickup, Pickup.id == PickupItem.pickup_id)
        .filter(PickupItem.item_id.in_(ids), Pickup.status.in_(OPEN_PICKUP_STATUSES))
        .all()
    )
    return {row.item_id: row.pickup_id for row in rows}


def open_delivery_claims(item_ids: Iterable[int]) -> dict[int, int]:
    """item_id -> id of the open (not delivered, not cancelled) delivery that holds it."""
    ids = list(item_ids)
    if not ids:
        return {}
    rows = (
        db.session.query(DeliveryItem.item_id, DeliveryItem.delivery_id)
        .join(Delivery, Delivery.id == DeliveryItem.delivery_id)
        .filter(DeliveryItem.item_id.in_(ids), Delivery.status.in_(OPEN_DELIVERY_STATUSES))
        .all()
    )
    return {row.item_id: row.delivery_id for row in rows}


def delete_item(item_id: int) -> None:
    """
    Remove an item and its historical batch associations.

    Scan events that matched the item keep their tag and lose the link.

    Raises ConflictError while an open pickup or open delivery references it.
    """
    def _op():
        item = lock_for_update(db.session.query(Item).filter(Item.id == item_id)).first()
        if item is None:
            raise NotFoundError(f"Item {item_id} not found", item_id=item_id)

        pickup_id = open_pickup_claims([item_id]).get(item_id)
        delivery_id = open_delivery_claims([item_id]).get(item_id)
        if pickup_id is not None or delivery_id is not None:
            raise ConflictError(
                f"Item {item_id} is referenced by an open batch",
                item_id=item_id,
                pickup_id=pickup_id,
                delivery_id=delivery_id,
            )

        db.session.query(PickupItem).filter(PickupItem.item_id == item_id).delete(synchronize_session=False)
        db.session.query(DeliveryItem).filter(DeliveryItem.item_id == item_id).delete(synchronize_session=False)
        db.session.query(Alert).filter(Alert.item_id == item_id).delete(synchronize_session=False)
        db.session.query(ScanEvent).filter(ScanEvent.item_id == item_id).update(
            {ScanEvent.item_id: None}, synchronize_session=False
        )
        append_audit_entry(
            tenant_id=item.tenant_id,
            event_type="item.deleted",
            entity_type="item",
            entity_id=item.id,
            note=item.rfid_tag,
        )
        db.session.delete(item)
        db.session.flush()

    run_in_transaction(_op)
    db.session.expire_all()
