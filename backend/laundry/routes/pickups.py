# backend/laundry/routes/pickups.py
"""
Pickup workflow API routes (hotel -> laundry).
"""
from flask import Blueprint, jsonify, request

from laundry.services import pickup_service
from laundry.validation import int_field, int_list_field, json_body, query_int, require_field, str_list_field


pickups_bp = Blueprint("pickups", __name__, url_prefix="/api/pickups")


@pickups_bp.route("", methods=["GET"])
def list_pickups():
    pickups = pickup_service.list_pickups(
        tenant_id=query_int("tenant_id"),
        status=request.args.get("status") or None,
        limit=min(query_int("limit") or 100, 500),
    )
    return jsonify({"pickups": [p.to_dict() for p in pickups]}), 200


@pickups_bp.route("", methods=["POST"])
def create_pickup():
    """
    Open a pickup bag.

    Request body:
    {
        "tenant_id": int,
        "bag_code": str,
        "item_ids": [int] (optional, empty = quick pickup),
        "seal_number": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Pickup created
        404: Item not found
        409: Duplicate bag code, foreign item, or item already in an open pickup
    """
    data = json_body()
    pickup = pickup_service.create_pickup(
        int_field(data, "tenant_id"),
        require_field(data, "bag_code"),
        int_list_field(data, "item_ids", required=False),
        seal_number=data.get("seal_number"),
        notes=data.get("notes"),
    )
    return jsonify(pickup.to_dict()), 201


@pickups_bp.route("/from-tags", methods=["POST"])
def create_pickup_from_tags():
    """Body: {"tenant_id": int, "rfid_tags": [str], "notes": str (optional)}"""
    data = json_body()
    result = pickup_service.create_pickup_from_tags(
        int_field(data, "tenant_id"),
        str_list_field(data, "rfid_tags"),
        notes=data.get("notes"),
    )
    return jsonify(result.to_dict()), 201


@pickups_bp.route("/<int:pickup_id>", methods=["GET"])
def get_pickup(pickup_id: int):
    return jsonify(pickup_service.get_pickup(pickup_id).to_dict()), 200


@pickups_bp.route("/bag/<path:bag_code>", methods=["GET"])
def get_pickup_by_bag_code(bag_code: str):
    return jsonify(pickup_service.get_pickup_by_bag_code(bag_code).to_dict()), 200


@pickups_bp.route("/<int:pickup_id>/receive", methods=["POST"])
def receive_pickup(pickup_id: int):
    """
    Receive a pickup at the laundry.

    Returns:
        200: Pickup received, members at_laundry
        404: Pickup not found
        409: Pickup already received
    """
    return jsonify(pickup_service.receive_pickup(pickup_id).to_dict()), 200
