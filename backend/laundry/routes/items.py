# backend/laundry/routes/items.py
"""
Item ledger API routes: registration, lookup, bulk wash transitions, condition.
"""
from flask import Blueprint, jsonify, request

from laundry.errors import ValidationError
from laundry.services import item_service
from laundry.validation import int_field, int_list_field, json_body, query_int, require_field


items_bp = Blueprint("items", __name__, url_prefix="/api/items")


@items_bp.route("", methods=["GET"])
def list_items():
    """
    Query params: tenant_id, status, item_type_id, search, updated_since, limit, offset
    """
    items = item_service.list_items(
        tenant_id=query_int("tenant_id"),
        status=request.args.get("status") or None,
        item_type_id=query_int("item_type_id"),
        search=request.args.get("search") or None,
        updated_since=request.args.get("updated_since") or None,
        limit=min(query_int("limit") or 200, 1000),
        offset=query_int("offset") or 0,
    )
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


@items_bp.route("", methods=["POST"])
def register_item():
    """
    Register one tagged item.

    Request body:
    {
        "tenant_id": int,
        "item_type_id": int,
        "rfid_tag": str,
        "location": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Item created (status at_hotel)
        400: Malformed tag or field
        409: Tag already registered
    """
    data = json_body()
    item = item_service.register_item(
        int_field(data, "tenant_id"),
        int_field(data, "item_type_id"),
        require_field(data, "rfid_tag"),
        location=data.get("location"),
        notes=data.get("notes"),
    )
    return jsonify(item.to_dict()), 201


@items_bp.route("/bulk", methods=["POST"])
def register_items_bulk():
    """Body: {"tenant_id": int, "items": [{"rfid_tag", "item_type_id", ...}]}"""
    data = json_body()
    entries = require_field(data, "items")
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        raise ValidationError("items must be a list of objects", field="items")
    result = item_service.register_items_bulk(int_field(data, "tenant_id"), entries)
    return jsonify(result.to_dict()), 201


@items_bp.route("/dirty", methods=["GET"])
def list_dirty_items():
    items = item_service.list_dirty_items(query_int("tenant_id"))
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


@items_bp.route("/ready", methods=["GET"])
def list_ready_items():
    items = item_service.list_ready_items(query_int("tenant_id"))
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


@items_bp.route("/rfid/<path:rfid_tag>", methods=["GET"])
def get_item_by_rfid(rfid_tag: str):
    return jsonify(item_service.get_item_by_rfid(rfid_tag).to_dict()), 200


@items_bp.route("/<int:item_id>", methods=["GET"])
def get_item(item_id: int):
    return jsonify(item_service.get_item(item_id).to_dict()), 200


@items_bp.route("/<int:item_id>", methods=["DELETE"])
def delete_item(item_id: int):
    item_service.delete_item(item_id)
    return jsonify({"deleted": True, "item_id": item_id}), 200


@items_bp.route("/<int:item_id>/status", methods=["PATCH"])
def override_status(item_id: int):
    """Administrative override. Body: {"status": str, "reason": str (optional)}"""
    data = json_body()
    item = item_service.override_status(item_id, require_field(data, "status"), reason=data.get("reason"))
    return jsonify(item.to_dict()), 200


@items_bp.route("/<int:item_id>/condition", methods=["PATCH"])
def set_condition(item_id: int):
    """Body: {"is_damaged": bool, "is_stained": bool, "notes": str} (all optional)"""
    data = json_body()
    for key in ("is_damaged", "is_stained"):
        if key in data and data[key] is not None and not isinstance(data[key], bool):
            raise ValidationError(f"{key} must be a boolean", field=key)
    item = item_service.set_condition(
        item_id,
        is_damaged=data.get("is_damaged"),
        is_stained=data.get("is_stained"),
        notes=data.get("notes"),
    )
    return jsonify(item.to_dict()), 200


@items_bp.route("/mark-clean", methods=["POST"])
def mark_clean():
    """
    Bulk {at_laundry, processing} -> ready_for_delivery.

    Ineligible ids are reported in "skipped"; the call itself never fails
    on a stale item.
    """
    result = item_service.mark_clean(int_list_field(json_body(), "item_ids"))
    return jsonify(result.to_dict()), 200


@items_bp.route("/mark-processing", methods=["POST"])
def mark_processing():
    result = item_service.mark_processing(int_list_field(json_body(), "item_ids"))
    return jsonify(result.to_dict()), 200
