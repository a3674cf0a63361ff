from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


# What the operator was doing when the reader ran
SCAN_SESSION_TYPES = ("pickup", "receive", "process", "clean", "package", "deliver")

SCAN_SESSION_STATUS_IN_PROGRESS = "in_progress"
SCAN_SESSION_STATUS_COMPLETED = "completed"
SCAN_SESSION_STATUSES = (SCAN_SESSION_STATUS_IN_PROGRESS, SCAN_SESSION_STATUS_COMPLETED)

SCAN_EVENT_RECORDED = "recorded"
SCAN_EVENT_CONFLICT = "conflict"

CONFLICT_RESOLUTION_FIRST_WINS = "auto_first_wins"
CONFLICT_RESOLUTION_MANUAL = "manual_override"


class ScanSession(db.Model):
    """
    One handheld reader run: a burst of RFID reads under one purpose.

    A session only records what was read. Item status changes stay with the
    pickup and delivery workflows.

    LIFECYCLE:
    1. in_progress: bulk scans are accepted
    2. completed: closed with a final item count, read-only afterwards
    """
    __tablename__ = "scan_sessions"
    __table_args__ = (
        db.Index("ix_scan_sessions_tenant_type", "tenant_id", "session_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    session_type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SCAN_SESSION_STATUS_IN_PROGRESS, index=True)

    # Optional link to the batch the operator was working on (e.g. "pickup", 12)
    related_entity_type = db.Column(db.String(32), nullable=True)
    related_entity_id = db.Column(db.Integer, nullable=True)

    device_uuid = db.Column(db.String(64), nullable=True, index=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    # Distinct tags read so far
    item_count = db.Column(db.Integer, nullable=False, default=0)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_scan_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    events = db.relationship(
        "ScanEvent",
        order_by="ScanEvent.id",
        cascade="all, delete-orphan",
        back_populates="session",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata_json) if self.metadata_json else {}

    def to_dict(self, *, include_events: bool = False) -> dict:
        body = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "session_type": self.session_type,
            "status": self.status,
            "related_entity_type": self.related_entity_type,
            "related_entity_id": self.related_entity_id,
            "device_uuid": self.device_uuid,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "metadata": self.metadata_dict,
            "item_count": self.item_count,
            "started_at": to_utc_z(self.started_at),
            "last_scan_at": to_utc_z(self.last_scan_at),
            "completed_at": to_utc_z(self.completed_at),
        }
        if include_events:
            body["events"] = [event.to_dict() for event in self.events]
        return body


class ScanEvent(db.Model):
    """One tag seen in one session; repeat reads only raise read_count."""
    __tablename__ = "scan_events"
    __table_args__ = (
        db.UniqueConstraint("session_id", "rfid_tag", name="uq_scan_events_session_tag"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("scan_sessions.id"), nullable=False, index=True)
    rfid_tag = db.Column(db.String(128), nullable=False, index=True)

    # None when the tag is not registered to the session's hotel
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True, index=True)

    signal_strength = db.Column(db.Integer, nullable=True)
    read_count = db.Column(db.Integer, nullable=False, default=1)
    sync_status = db.Column(db.String(16), nullable=False, default=SCAN_EVENT_RECORDED)

    scanned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    session = db.relationship("ScanSession", back_populates="events")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "rfid_tag": self.rfid_tag,
            "item_id": self.item_id,
            "signal_strength": self.signal_strength,
            "read_count": self.read_count,
            "sync_status": self.sync_status,
            "scanned_at": to_utc_z(self.scanned_at),
        }


class ScanConflict(db.Model):
    """
    Same tag read by two sessions of the same type within the conflict window.

    The earlier session wins until an operator resolves the conflict.
    """
    __tablename__ = "scan_conflicts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    rfid_tag = db.Column(db.String(128), nullable=False, index=True)

    winning_session_id = db.Column(db.Integer, db.ForeignKey("scan_sessions.id"), nullable=False)
    conflicting_session_id = db.Column(db.Integer, db.ForeignKey("scan_sessions.id"), nullable=False)

    resolution = db.Column(db.String(32), nullable=False, default=CONFLICT_RESOLUTION_FIRST_WINS)
    is_resolved = db.Column(db.Boolean, nullable=False, default=False, index=True)
    resolved_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "rfid_tag": self.rfid_tag,
            "winning_session_id": self.winning_session_id,
            "conflicting_session_id": self.conflicting_session_id,
            "resolution": self.resolution,
            "is_resolved": self.is_resolved,
            "resolved_by": self.resolved_by,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at),
        }
