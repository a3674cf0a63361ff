# backend/laundry/routes/tenants.py
"""
Tenant (hotel) registry API routes.
"""
from flask import Blueprint, jsonify, request

from laundry.services import audit_service, item_service, tenant_service
from laundry.validation import json_body, query_int, require_field


tenants_bp = Blueprint("tenants", __name__, url_prefix="/api/tenants")


@tenants_bp.route("", methods=["GET"])
def list_tenants():
    active_only = request.args.get("active_only", "").lower() in ("1", "true", "yes")
    tenants = tenant_service.list_tenants(active_only=active_only)
    return jsonify({"tenants": [t.to_dict() for t in tenants]}), 200


@tenants_bp.route("", methods=["POST"])
def create_tenant():
    """
    Register a hotel.

    Request body:
    {
        "name": str,
        "email": str (optional),
        "phone": str (optional),
        "address": str (optional),
        "latitude": float (optional),
        "longitude": float (optional)
    }

    Returns:
        201: Tenant created
        400: Invalid request
        409: Email already used
    """
    data = json_body()
    tenant = tenant_service.create_tenant(
        require_field(data, "name"),
        email=data.get("email"),
        phone=data.get("phone"),
        address=data.get("address"),
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
    )
    return jsonify(tenant.to_dict()), 201


@tenants_bp.route("/<int:tenant_id>", methods=["GET"])
def get_tenant(tenant_id: int):
    return jsonify(tenant_service.get_tenant(tenant_id).to_dict()), 200


@tenants_bp.route("/<int:tenant_id>", methods=["PATCH"])
def update_tenant(tenant_id: int):
    tenant = tenant_service.update_tenant(tenant_id, **json_body())
    return jsonify(tenant.to_dict()), 200


@tenants_bp.route("/<int:tenant_id>/deactivate", methods=["POST"])
def deactivate_tenant(tenant_id: int):
    return jsonify(tenant_service.deactivate_tenant(tenant_id).to_dict()), 200


@tenants_bp.route("/<int:tenant_id>", methods=["DELETE"])
def hard_delete_tenant(tenant_id: int):
    """
    Permanently remove a tenant and all of its data.

    Returns:
        200: Removed row counts per step
        404: Tenant not found
        409: Tenant still has open pickups or deliveries
    """
    removed = tenant_service.hard_delete_tenant(tenant_id)
    return jsonify({"deleted": True, "removed": removed}), 200


@tenants_bp.route("/<int:tenant_id>/alerts", methods=["GET"])
def list_alerts(tenant_id: int):
    tenant_service.get_tenant(tenant_id)
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    alerts = item_service.list_alerts(tenant_id, unread_only=unread_only)
    return jsonify({"alerts": [a.to_dict() for a in alerts]}), 200


@tenants_bp.route("/<int:tenant_id>/audit", methods=["GET"])
def list_audit_entries(tenant_id: int):
    """Query params: entity_type, entity_id, limit"""
    tenant_service.get_tenant(tenant_id)
    entries = audit_service.list_audit_entries(
        tenant_id=tenant_id,
        entity_type=request.args.get("entity_type") or None,
        entity_id=query_int("entity_id"),
        limit=min(query_int("limit") or 200, 1000),
    )
    return jsonify({"entries": [e.to_dict() for e in entries]}), 200
