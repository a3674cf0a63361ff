# backend/laundry/routes/scan.py
"""
RFID scanning API routes.

POST /api/scan reconciles a one-off read and never writes. Scan sessions
persist a reader run (start, bulk reads, end) and surface conflicts between
sessions; they never change item state either.
"""
from flask import Blueprint, jsonify, request

from laundry.errors import ValidationError
from laundry.services import scan_service, scan_session_service
from laundry.validation import int_field, json_body, query_int, require_field, str_list_field


scan_bp = Blueprint("scan", __name__, url_prefix="/api/scan")


def _query_bool(name: str):
    value = (request.args.get(name) or "").strip().lower()
    if not value:
        return None
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    raise ValidationError(f"{name} must be true or false", field=name)


@scan_bp.route("", methods=["POST"])
def scan_tags():
    """
    Request body:
    {
        "rfid_tags": [str, ...],
        "tenant_id": int (optional, restricts matches to one hotel)
    }

    Returns:
        200: {items, found, notFound, notFoundTags}
    """
    data = json_body()
    result = scan_service.scan(
        str_list_field(data, "rfid_tags"),
        tenant_id=int_field(data, "tenant_id", required=False),
    )
    return jsonify(result.to_dict()), 200


@scan_bp.route("/session/start", methods=["POST"])
def start_session():
    """
    Request body:
    {
        "tenant_id": int,
        "session_type": "pickup" | "receive" | "process" | "clean" | "package" | "deliver",
        "device_uuid": str (optional),
        "related_entity_type": str (optional),
        "related_entity_id": int (optional),
        "metadata": object (optional),
        "latitude": float (optional),
        "longitude": float (optional)
    }

    Returns:
        201: Session started
    """
    data = json_body()
    session = scan_session_service.start_session(
        int_field(data, "tenant_id"),
        require_field(data, "session_type"),
        device_uuid=data.get("device_uuid"),
        related_entity_type=data.get("related_entity_type"),
        related_entity_id=int_field(data, "related_entity_id", required=False),
        metadata=data.get("metadata"),
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
    )
    return jsonify(session.to_dict()), 201


@scan_bp.route("/bulk", methods=["POST"])
def bulk_scans():
    """
    Request body:
    {
        "session_id": int,
        "scans": [{"rfid_tag": str, "signal_strength": int?, "scanned_at": ISO?}, ...]
    }

    Returns:
        200: {session_id, added, updated, total, conflicts}
        409: Session already completed
    """
    data = json_body()
    scans = require_field(data, "scans")
    if not isinstance(scans, list):
        raise ValidationError("scans must be a list", field="scans")
    result = scan_session_service.add_scans(int_field(data, "session_id"), scans)
    return jsonify(result.to_dict()), 200


@scan_bp.route("/session/<int:session_id>/end", methods=["POST"])
def end_session(session_id: int):
    """Body: {"item_count": int (optional), "metadata": object (optional)}"""
    data = json_body()
    session = scan_session_service.end_session(
        session_id,
        item_count=int_field(data, "item_count", required=False),
        metadata=data.get("metadata"),
    )
    return jsonify(session.to_dict()), 200


@scan_bp.route("/session/<int:session_id>", methods=["GET"])
def get_session(session_id: int):
    session = scan_session_service.get_session(session_id)
    return jsonify(session.to_dict(include_events=True)), 200


@scan_bp.route("/sessions", methods=["GET"])
def list_sessions():
    sessions = scan_session_service.list_sessions(
        tenant_id=query_int("tenant_id"),
        status=request.args.get("status") or None,
        session_type=request.args.get("session_type") or None,
        limit=min(query_int("limit") or 100, 500),
    )
    return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200


@scan_bp.route("/conflicts", methods=["GET"])
def list_conflicts():
    conflicts = scan_session_service.list_conflicts(
        tenant_id=query_int("tenant_id"),
        resolved=_query_bool("resolved"),
    )
    return jsonify({"conflicts": [c.to_dict() for c in conflicts]}), 200


@scan_bp.route("/conflicts/<int:conflict_id>/resolve", methods=["POST"])
def resolve_conflict(conflict_id: int):
    """
    Request body:
    {
        "winning_session_id": int (optional, default keeps the first session),
        "resolution": str (optional, default "manual_override"),
        "resolved_by": str (optional)
    }
    """
    data = json_body()
    conflict = scan_session_service.resolve_conflict(
        conflict_id,
        winning_session_id=int_field(data, "winning_session_id", required=False),
        resolution=data.get("resolution"),
        resolved_by=data.get("resolved_by"),
    )
    return jsonify(conflict.to_dict()), 200
