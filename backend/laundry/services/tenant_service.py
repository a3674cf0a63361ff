"""
Tenant Registry and Tenant Lifecycle Cascade

WHY: Every Item, Pickup and Delivery is scoped to a hotel (tenant). The
registry is plain CRUD with contact-email uniqueness; the cascade is the
one destructive operation and must never leave a half-deleted tenant.

CASCADE ORDER (dependency-safe, one unit of work):
1. delivery packages, delivery-item associations, deliveries
2. pickup-item associations, pickups
3. scan conflicts, scan events, scan sessions
4. alerts
5. items
6. audit entries
7. the tenant itself

USAGE:
    from laundry.services.tenant_service import create_tenant, hard_delete_tenant

    hotel = create_tenant("Grand Hotel", email="ops@grand.example")
    hard_delete_tenant(hotel.id)
"""

from __future__ import annotations

import re

from flask import current_app

from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Alert,
    AuditEntry,
    Delivery,
    DeliveryItem,
    DeliveryPackage,
    Item,
    Pickup,
    PickupItem,
    ScanConflict,
    ScanEvent,
    ScanSession,
    Tenant,
)
from ..models.deliveries import OPEN_DELIVERY_STATUSES
from ..models.pickups import OPEN_PICKUP_STATUSES
from .audit_service import append_audit_entry
from .concurrency import lock_for_update, run_in_transaction

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Fields callers may change through update_tenant
WRITABLE_FIELDS = {"name", "email", "phone", "address", "latitude", "longitude", "is_active"}


def _clean_text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _validate_email(email: str | None) -> str | None:
    email = _clean_text(email)
    if email is None:
        return None
    if not _EMAIL_RE.match(email):
        raise ValidationError(f"Invalid email: {email!r}", field="email")
    return email.lower()


def _validate_coordinate(value, field: str, limit: float) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if not -limit <= number <= limit:
        raise ValidationError(f"{field} must be between -{limit} and {limit}", field=field)
    return number


def _require_unique_email(email: str | None, exclude_tenant_id: int | None = None) -> None:
    if email is None:
        return
    q = db.session.query(Tenant.id).filter(Tenant.email == email)
    if exclude_tenant_id is not None:
        q = q.filter(Tenant.id != exclude_tenant_id)
    if q.first() is not None:
        raise ConflictError(f"Email {email} is already used by another tenant", email=email)


# =============================================================================
# Registry
# =============================================================================

def create_tenant(
    name: str,
    *,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
) -> Tenant:
    """
    Register a new hotel.

    Raises:
        ValidationError: empty name, malformed email or coordinates
        ConflictError: email already used by another tenant
    """
    name = _clean_text(name)
    if not name:
        raise ValidationError("Tenant name is required", field="name")
    email = _validate_email(email)
    latitude = _validate_coordinate(latitude, "latitude", 90.0)
    longitude = _validate_coordinate(longitude, "longitude", 180.0)

    def _op():
        _require_unique_email(email)
        tenant = Tenant(
            name=name,
            email=email,
            phone=_clean_text(phone),
            address=_clean_text(address),
            latitude=latitude,
            longitude=longitude,
            is_active=True,
        )
        db.session.add(tenant)
        db.session.flush()
        append_audit_entry(
            tenant_id=tenant.id,
            event_type="tenant.created",
            entity_type="tenant",
            entity_id=tenant.id,
            note=name,
        )
        return tenant

    return run_in_transaction(_op)


def get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError(f"Tenant {tenant_id} not found", tenant_id=tenant_id)
    return tenant


def require_active_tenant(tenant_id: int) -> Tenant:
    """
    Tenant must exist and be active.

    New items and new batches cannot be created for a deactivated hotel;
    batches already in flight still complete.
    """
    tenant = get_tenant(tenant_id)
    if not tenant.is_active:
        raise InvalidStateError(f"Tenant {tenant_id} is not active", tenant_id=tenant_id)
    return tenant


def list_tenants(active_only: bool = False) -> list[Tenant]:
    q = db.session.query(Tenant)
    if active_only:
        q = q.filter(Tenant.is_active.is_(True))
    return q.order_by(Tenant.name, Tenant.id).all()


def update_tenant(tenant_id: int, **fields) -> Tenant:
    """
    Partial update of writable tenant fields.

    Unknown fields are rejected rather than silently ignored.
    """
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not writable: {', '.join(sorted(unknown))}", fields=sorted(unknown))

    patch: dict = {}
    if "name" in fields:
        name = _clean_text(fields["name"])
        if not name:
            raise ValidationError("Tenant name is required", field="name")
        patch["name"] = name
    if "email" in fields:
        patch["email"] = _validate_email(fields["email"])
    for key in ("phone", "address"):
        if key in fields:
            patch[key] = _clean_text(fields[key])
    if "latitude" in fields:
        patch["latitude"] = _validate_coordinate(fields["latitude"], "latitude", 90.0)
    if "longitude" in fields:
        patch["longitude"] = _validate_coordinate(fields["longitude"], "longitude", 180.0)
    if "is_active" in fields:
        patch["is_active"] = bool(fields["is_active"])

    def _op():
        tenant = get_tenant(tenant_id)
        if "email" in patch:
            _require_unique_email(patch["email"], exclude_tenant_id=tenant.id)
        for key, value in patch.items():
            setattr(tenant, key, value)
        db.session.flush()
        return tenant

    return run_in_transaction(_op)


# =============================================================================
# Lifecycle cascade
# =============================================================================

def deactivate_tenant(tenant_id: int) -> Tenant:
    """Soft deactivation: pure flag flip, always safe, idempotent."""
    def _op():
        tenant = get_tenant(tenant_id)
        if tenant.is_active:
            tenant.is_active = False
            append_audit_entry(
                tenant_id=tenant.id,
                event_type="tenant.deactivated",
                entity_type="tenant",
                entity_id=tenant.id,
            )
        return tenant

    return run_in_transaction(_op)


def _open_batch_references(tenant_id: int) -> dict:
    open_pickups = (
        db.session.query(Pickup.id)
        .filter(Pickup.tenant_id == tenant_id, Pickup.status.in_(OPEN_PICKUP_STATUSES))
        .order_by(Pickup.id)
        .all()
    )
    open_deliveries = (
        db.session.query(Delivery.id)
        .filter(Delivery.tenant_id == tenant_id, Delivery.status.in_(OPEN_DELIVERY_STATUSES))
        .order_by(Delivery.id)
        .all()
    )
    return {
        "open_pickup_ids": [row.id for row in open_pickups],
        "open_delivery_ids": [row.id for row in open_deliveries],
    }


def _delete_deliveries(tenant_id: int) -> int:
    delivery_ids = db.session.query(Delivery.id).filter(Delivery.tenant_id == tenant_id)
    db.session.query(DeliveryPackage).filter(
        DeliveryPackage.delivery_id.in_(delivery_ids.scalar_subquery())
    ).delete(synchronize_session=False)
    db.session.query(DeliveryItem).filter(
        DeliveryItem.delivery_id.in_(delivery_ids.scalar_subquery())
    ).delete(synchronize_session=False)
    return db.session.query(Delivery).filter(Delivery.tenant_id == tenant_id).delete(synchronize_session=False)


def _delete_pickups(tenant_id: int) -> int:
    pickup_ids = db.session.query(Pickup.id).filter(Pickup.tenant_id == tenant_id)
    db.session.query(PickupItem).filter(
        PickupItem.pickup_id.in_(pickup_ids.scalar_subquery())
    ).delete(synchronize_session=False)
    return db.session.query(Pickup).filter(Pickup.tenant_id == tenant_id).delete(synchronize_session=False)


def _delete_scan_sessions(tenant_id: int) -> int:
    session_ids = db.session.query(ScanSession.id).filter(ScanSession.tenant_id == tenant_id)
    db.session.query(ScanConflict).filter(ScanConflict.tenant_id == tenant_id).delete(synchronize_session=False)
    db.session.query(ScanEvent).filter(
        ScanEvent.session_id.in_(session_ids.scalar_subquery())
    ).delete(synchronize_session=False)
    return db.session.query(ScanSession).filter(ScanSession.tenant_id == tenant_id).delete(synchronize_session=False)


def _delete_alerts(tenant_id: int) -> int:
    return db.session.query(Alert).filter(Alert.tenant_id == tenant_id).delete(synchronize_session=False)


def _delete_items(tenant_id: int) -> int:
    # Associations of this tenant's items are gone with the batches above;
    # a foreign batch referencing them would have to belong to another tenant.
    return db.session.query(Item).filter(Item.tenant_id == tenant_id).delete(synchronize_session=False)


def _delete_audit_entries(tenant_id: int) -> int:
    return db.session.query(AuditEntry).filter(AuditEntry.tenant_id == tenant_id).delete(synchronize_session=False)


# Order matters: each step removes rows the next one's targets are referenced by.
CASCADE_STEPS = (
    ("deliveries", _delete_deliveries),
    ("pickups", _delete_pickups),
    ("scan_sessions", _delete_scan_sessions),
    ("alerts", _delete_alerts),
    ("items", _delete_items),
    ("audit_entries", _delete_audit_entries),
)


def hard_delete_tenant(tenant_id: int) -> dict:
    """
    Destructive, ordered removal of a tenant and everything referencing it.

    Refuses (ConflictError, nothing touched) while the tenant still has an
    open pickup or an open delivery: items in flight must be conserved.
    Any failure part-way rolls the whole cascade back.

    Returns:
        dict: number of rows removed per step
    """
    def _op():
        tenant = lock_for_update(db.session.query(Tenant).filter(Tenant.id == tenant_id)).first()
        if tenant is None:
            raise NotFoundError(f"Tenant {tenant_id} not found", tenant_id=tenant_id)

        refs = _open_batch_references(tenant_id)
        if refs["open_pickup_ids"] or refs["open_delivery_ids"]:
            raise ConflictError(
                f"Tenant {tenant_id} still has open pickups or deliveries",
                tenant_id=tenant_id,
                **refs,
            )

        removed = {}
        for name, step in CASCADE_STEPS:
            removed[name] = step(tenant_id)

        removed["tenant"] = (
            db.session.query(Tenant).filter(Tenant.id == tenant_id).delete(synchronize_session=False)
        )
        return removed

    removed = run_in_transaction(_op)
    # Session identity map may still hold deleted rows loaded earlier
    db.session.expire_all()
    current_app.logger.info("Tenant %s hard-deleted: %s", tenant_id, removed)
    return removed
