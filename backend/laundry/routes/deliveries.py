# backend/laundry/routes/deliveries.py
"""
Delivery workflow API routes (laundry -> hotel).

Every transition endpoint returns 409 when the delivery is not in the
required source state.
"""
from flask import Blueprint, jsonify, request

from laundry.services import delivery_service
from laundry.validation import int_field, int_list_field, json_body, query_int


deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api/deliveries")


@deliveries_bp.route("", methods=["GET"])
def list_deliveries():
    deliveries = delivery_service.list_deliveries(
        tenant_id=query_int("tenant_id"),
        status=request.args.get("status") or None,
        limit=min(query_int("limit") or 100, 500),
    )
    return jsonify({"deliveries": [d.to_dict() for d in deliveries]}), 200


@deliveries_bp.route("", methods=["POST"])
def create_delivery():
    """
    Create a delivery.

    Request body:
    {
        "tenant_id": int,
        "item_ids": [int],
        "package_count": int (optional, default 1),
        "notes": str (optional)
    }

    Returns:
        201: Delivery created with barcode and packages
        400: Invalid request
        404: Tenant or item not found
        409: Item not ready, foreign, or already in an open delivery
    """
    data = json_body()
    delivery = delivery_service.create_delivery(
        int_field(data, "tenant_id"),
        int_list_field(data, "item_ids"),
        package_count=int_field(data, "package_count", required=False, default=1),
        notes=data.get("notes"),
    )
    return jsonify(delivery.to_dict()), 201


@deliveries_bp.route("/<int:delivery_id>", methods=["GET"])
def get_delivery(delivery_id: int):
    return jsonify(delivery_service.get_delivery(delivery_id).to_dict()), 200


@deliveries_bp.route("/barcode/<path:barcode>", methods=["GET"])
def get_delivery_by_barcode(barcode: str):
    return jsonify(delivery_service.get_delivery_by_barcode(barcode).to_dict()), 200


@deliveries_bp.route("/<int:delivery_id>/print-label", methods=["POST"])
def print_label(delivery_id: int):
    return jsonify(delivery_service.print_label(delivery_id).to_dict()), 200


@deliveries_bp.route("/<int:delivery_id>/package", methods=["POST"])
def package_delivery(delivery_id: int):
    return jsonify(delivery_service.package_delivery(delivery_id).to_dict()), 200


@deliveries_bp.route("/<int:delivery_id>/pickup", methods=["POST"])
def pickup_delivery(delivery_id: int):
    return jsonify(delivery_service.pickup_delivery(delivery_id).to_dict()), 200


@deliveries_bp.route("/packages/<path:package_barcode>/scan", methods=["POST"])
def scan_package(package_barcode: str):
    result = delivery_service.scan_package(package_barcode)
    return jsonify({
        "package": result["package"].to_dict(),
        "delivery": result["delivery"].to_dict(),
        "all_packages_scanned": result["all_packages_scanned"],
        "total_packages": result["total_packages"],
        "scanned_packages": result["scanned_packages"],
    }), 200


@deliveries_bp.route("/<int:delivery_id>/deliver", methods=["POST"])
def deliver(delivery_id: int):
    """
    Hand over at the hotel.

    Request body (all optional):
    {
        "latitude": float,
        "longitude": float,
        "address": str
    }

    Returns:
        200: Delivered, items back at_hotel
        400: Driver too far from the hotel
        409: Delivery not picked up
    """
    data = json_body()
    delivery = delivery_service.deliver(
        delivery_id,
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
        address=data.get("address"),
    )
    return jsonify(delivery.to_dict()), 200


@deliveries_bp.route("/<int:delivery_id>/cancel", methods=["POST"])
def cancel_delivery(delivery_id: int):
    data = json_body()
    delivery = delivery_service.cancel_delivery(delivery_id, reason=data.get("reason"))
    return jsonify(delivery.to_dict()), 200


@deliveries_bp.route("/bags", methods=["POST"])
def create_delivery_bag():
    """Body: {"delivery_ids": [int]}"""
    result = delivery_service.create_delivery_bag(int_list_field(json_body(), "delivery_ids"))
    return jsonify({
        "bag_code": result["bag_code"],
        "delivery_count": result["delivery_count"],
        "deliveries": [d.to_dict() for d in result["deliveries"]],
    }), 201


@deliveries_bp.route("/bags/<path:bag_code>", methods=["GET"])
def get_bag(bag_code: str):
    deliveries = delivery_service.get_bag_deliveries(bag_code)
    return jsonify({
        "bag_code": bag_code,
        "delivery_count": len(deliveries),
        "deliveries": [d.to_dict() for d in deliveries],
    }), 200


@deliveries_bp.route("/bags/<path:bag_code>/deliver", methods=["POST"])
def deliver_bag(bag_code: str):
    data = json_body()
    deliveries = delivery_service.deliver_bag(
        bag_code,
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
        address=data.get("address"),
    )
    return jsonify({
        "bag_code": bag_code,
        "delivered_count": len(deliveries),
        "deliveries": [d.to_dict() for d in deliveries],
    }), 200
