# Overview: Scan sessions: persisted handheld reader runs, repeat-read dedupe, cross-session conflicts.

"""
Scan Sessions

A scan session records what one reader saw during one task (collecting a
pickup, packing a delivery, ...). It never moves items: status changes
belong to the pickup and delivery workflows.

LIFECYCLE:
    in_progress -> completed

RULES:
1. One ScanEvent per distinct tag per session. Repeat reads add to
   read_count and keep the strongest signal.
2. item_count follows the number of distinct tags after every batch.
3. A new tag already read by another session of the same hotel and type
   within SCAN_CONFLICT_WINDOW_SECONDS is a conflict: the first session
   wins, the new event is stored with sync_status "conflict", and a
   ScanConflict waits for an operator.
4. Concurrent batches on one session serialize on the session's version.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ScanConflict, ScanEvent, ScanSession
from ..models.scans import (
    CONFLICT_RESOLUTION_MANUAL,
    SCAN_EVENT_CONFLICT,
    SCAN_EVENT_RECORDED,
    SCAN_SESSION_STATUS_COMPLETED,
    SCAN_SESSION_STATUS_IN_PROGRESS,
    SCAN_SESSION_STATUSES,
    SCAN_SESSION_TYPES,
)
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import coordinate_value
from .audit_service import append_audit_entry
from .concurrency import lock_for_update, run_in_transaction
from .item_service import validate_rfid_tag
from .scan_service import scan
from .tenant_service import require_active_tenant


@dataclass
class TagRead:
    """Every read of one tag within a single bulk upload, collapsed."""
    rfid_tag: str
    scanned_at: datetime
    signal_strength: Optional[int] = None
    reads: int = 1

    @property
    def key(self) -> str:
        return self.rfid_tag.upper()


@dataclass
class BulkScanResult:
    session: ScanSession
    added: int = 0
    updated: int = 0
    conflicts: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.session.item_count

    def to_dict(self) -> dict:
        return {
            "session_id": self.session.id,
            "added": self.added,
            "updated": self.updated,
            "total": self.total,
            "conflicts": list(self.conflicts),
        }


def _stronger(current: Optional[int], new: Optional[int]) -> Optional[int]:
    if current is None:
        return new
    if new is None:
        return current
    return max(current, new)


def _metadata(value) -> Optional[dict]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError("metadata must be an object", field="metadata")
    return value


def collapse_reads(scans: Iterable) -> list[TagRead]:
    """
    Validate a raw upload and fold repeat reads of the same tag together.

    Each entry is {"rfid_tag": str, "signal_strength": int?, "scanned_at": ISO?}.
    Tags compare case-insensitively; the first spelling is kept, along with
    the earliest read time and the strongest signal.
    """
    now = utcnow()
    collapsed: dict[str, TagRead] = {}
    for index, entry in enumerate(scans):
        if not isinstance(entry, dict):
            raise ValidationError(f"scans[{index}] must be an object", index=index)

        tag = validate_rfid_tag(entry.get("rfid_tag"))
        strength = entry.get("signal_strength")
        if strength is not None and (isinstance(strength, bool) or not isinstance(strength, int)):
            raise ValidationError(f"scans[{index}].signal_strength must be an integer", index=index)
        try:
            scanned_at = parse_iso_datetime(entry.get("scanned_at")) or now
        except (TypeError, ValueError, AttributeError):
            raise ValidationError(f"scans[{index}].scanned_at must be an ISO-8601 datetime", index=index)

        read = collapsed.get(tag.upper())
        if read is None:
            collapsed[tag.upper()] = TagRead(rfid_tag=tag, scanned_at=scanned_at, signal_strength=strength)
            continue
        read.reads += 1
        read.signal_strength = _stronger(read.signal_strength, strength)
        read.scanned_at = min(read.scanned_at, scanned_at)
    return list(collapsed.values())


# =============================================================================
# Session lifecycle
# =============================================================================

def start_session(
    tenant_id: int,
    session_type: str,
    *,
    device_uuid: Optional[str] = None,
    related_entity_type: Optional[str] = None,
    related_entity_id: Optional[int] = None,
    metadata: Optional[dict] = None,
    latitude=None,
    longitude=None,
) -> ScanSession:
    """
    Open an in_progress session for one hotel.

    Raises:
        ValidationError: unknown session type, malformed metadata or coordinates
        NotFoundError / InvalidStateError: unknown or inactive tenant
    """
    if session_type not in SCAN_SESSION_TYPES:
        raise ValidationError(
            f"Invalid session type '{session_type}'",
            session_type=session_type,
            allowed=list(SCAN_SESSION_TYPES),
        )
    metadata = _metadata(metadata)
    latitude = coordinate_value(latitude, "latitude")
    longitude = coordinate_value(longitude, "longitude")

    def _op():
        require_active_tenant(tenant_id)
        session = ScanSession(
            tenant_id=tenant_id,
            session_type=session_type,
            status=SCAN_SESSION_STATUS_IN_PROGRESS,
            device_uuid=(device_uuid or "").strip() or None,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            metadata_json=json.dumps(metadata, sort_keys=True) if metadata else None,
            latitude=latitude,
            longitude=longitude,
            started_at=utcnow(),
        )
        db.session.add(session)
        db.session.flush()

        append_audit_entry(
            tenant_id=tenant_id,
            event_type="scan_session.started",
            entity_type="scan_session",
            entity_id=session.id,
            payload={"session_type": session_type, "device_uuid": session.device_uuid},
        )
        return session

    session = run_in_transaction(_op)
    current_app.logger.info("Scan session %s (%s) started for tenant %s", session.id, session_type, tenant_id)
    return session


def _lock_session(session_id: int) -> ScanSession:
    session = lock_for_update(db.session.query(ScanSession).filter(ScanSession.id == session_id)).first()
    if session is None:
        raise NotFoundError(f"Scan session {session_id} not found", session_id=session_id)
    return session


def _require_in_progress(session: ScanSession, action: str) -> None:
    if session.status != SCAN_SESSION_STATUS_IN_PROGRESS:
        raise InvalidStateError(
            f"Cannot {action} scan session {session.id}: status is {session.status}",
            session_id=session.id,
            status=session.status,
        )


def _first_reader(session: ScanSession, read: TagRead, window: timedelta) -> Optional[ScanEvent]:
    """Earliest uncontested read of the tag by another same-type session of this hotel."""
    return (
        db.session.query(ScanEvent)
        .join(ScanSession, ScanSession.id == ScanEvent.session_id)
        .filter(
            ScanSession.tenant_id == session.tenant_id,
            ScanSession.session_type == session.session_type,
            ScanSession.id != session.id,
            func.upper(ScanEvent.rfid_tag) == read.key,
            ScanEvent.sync_status == SCAN_EVENT_RECORDED,
            ScanEvent.scanned_at > read.scanned_at - window,
            ScanEvent.scanned_at < read.scanned_at + window,
        )
        .order_by(ScanEvent.id)
        .first()
    )


def add_scans(session_id: int, scans: Iterable) -> BulkScanResult:
    """
    Record a batch of raw reads against an in_progress session.

    Returns counts of new tags (added), tags already in the session
    (updated), the session's distinct tag total, and tags that conflicted
    with another session.

    Raises:
        ValidationError: empty batch or malformed entry (nothing is stored)
        NotFoundError: unknown session
        InvalidStateError: session already completed
    """
    scans = list(scans or [])
    if not scans:
        raise ValidationError("scans must contain at least one read", field="scans")
    reads = collapse_reads(scans)
    window = timedelta(seconds=current_app.config.get("SCAN_CONFLICT_WINDOW_SECONDS", 3600))

    def _op():
        session = _lock_session(session_id)
        _require_in_progress(session, "add scans to")
        # Versioned write first: a concurrent batch on this session retries
        session.last_scan_at = utcnow()
        db.session.flush()

        result = BulkScanResult(session=session)
        known = {event.rfid_tag.upper(): event for event in session.events}
        fresh = []
        for read in reads:
            event = known.get(read.key)
            if event is None:
                fresh.append(read)
                continue
            event.read_count += read.reads
            event.signal_strength = _stronger(event.signal_strength, read.signal_strength)
            result.updated += 1

        known_items = scan([read.rfid_tag for read in fresh], session.tenant_id).items
        matched = {item.rfid_tag.upper(): item.id for item in known_items}
        for read in fresh:
            status = SCAN_EVENT_RECORDED
            first = _first_reader(session, read, window)
            if first is not None:
                status = SCAN_EVENT_CONFLICT
                db.session.add(ScanConflict(
                    tenant_id=session.tenant_id,
                    rfid_tag=read.rfid_tag,
                    winning_session_id=first.session_id,
                    conflicting_session_id=session.id,
                ))
                result.conflicts.append(read.rfid_tag)
            session.events.append(ScanEvent(
                rfid_tag=read.rfid_tag,
                item_id=matched.get(read.key),
                signal_strength=read.signal_strength,
                read_count=read.reads,
                sync_status=status,
                scanned_at=read.scanned_at,
            ))
            result.added += 1

        session.item_count = len(session.events)
        db.session.flush()
        return result

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Scan session %s: %d added, %d updated, %d conflicts",
        session_id,
        result.added,
        result.updated,
        len(result.conflicts),
    )
    if result.conflicts:
        current_app.logger.warning("Scan session %s conflicting tags: %s", session_id, ", ".join(result.conflicts))
    return result


def end_session(
    session_id: int,
    *,
    item_count: Optional[int] = None,
    metadata: Optional[dict] = None,
) -> ScanSession:
    """
    Close a session.

    item_count defaults to the number of distinct tags recorded; an
    explicit count (what the operator physically counted) overrides it.
    metadata is merged over what was given at start.
    """
    if item_count is not None and (isinstance(item_count, bool) or not isinstance(item_count, int) or item_count < 0):
        raise ValidationError("item_count must be an integer >= 0", field="item_count")
    metadata = _metadata(metadata)

    def _op():
        session = _lock_session(session_id)
        _require_in_progress(session, "end")

        session.status = SCAN_SESSION_STATUS_COMPLETED
        session.completed_at = utcnow()
        session.item_count = item_count if item_count is not None else len(session.events)
        if metadata:
            merged = session.metadata_dict
            merged.update(metadata)
            session.metadata_json = json.dumps(merged, sort_keys=True)

        append_audit_entry(
            tenant_id=session.tenant_id,
            event_type="scan_session.completed",
            entity_type="scan_session",
            entity_id=session.id,
            payload={"item_count": session.item_count},
        )
        return session

    session = run_in_transaction(_op)
    current_app.logger.info("Scan session %s completed with %d items", session.id, session.item_count)
    return session


def get_session(session_id: int) -> ScanSession:
    session = db.session.get(ScanSession, session_id)
    if session is None:
        raise NotFoundError(f"Scan session {session_id} not found", session_id=session_id)
    return session


def list_sessions(
    *,
    tenant_id: Optional[int] = None,
    status: Optional[str] = None,
    session_type: Optional[str] = None,
    limit: int = 100,
) -> list[ScanSession]:
    q = db.session.query(ScanSession)
    if tenant_id is not None:
        q = q.filter(ScanSession.tenant_id == tenant_id)
    if status is not None:
        if status not in SCAN_SESSION_STATUSES:
            raise ValidationError(f"Invalid scan session status '{status}'", status=status)
        q = q.filter(ScanSession.status == status)
    if session_type is not None:
        if session_type not in SCAN_SESSION_TYPES:
            raise ValidationError(f"Invalid session type '{session_type}'", session_type=session_type)
        q = q.filter(ScanSession.session_type == session_type)
    return q.order_by(ScanSession.id.desc()).limit(limit).all()


# =============================================================================
# Conflicts
# =============================================================================

def list_conflicts(*, tenant_id: Optional[int] = None, resolved: Optional[bool] = None) -> list[ScanConflict]:
    q = db.session.query(ScanConflict)
    if tenant_id is not None:
        q = q.filter(ScanConflict.tenant_id == tenant_id)
    if resolved is not None:
        q = q.filter(ScanConflict.is_resolved == resolved)
    return q.order_by(ScanConflict.id.desc()).all()


def resolve_conflict(
    conflict_id: int,
    *,
    winning_session_id: Optional[int] = None,
    resolution: Optional[str] = None,
    resolved_by: Optional[str] = None,
) -> ScanConflict:
    """
    Operator decision on a conflict.

    winning_session_id may name either session involved; by default the
    first session keeps the tag. When the later session wins, the two
    events swap sync_status so the conflict marker follows the loser.

    Raises:
        NotFoundError: unknown conflict
        InvalidStateError: already resolved
        ValidationError: winner is not one of the two sessions
    """
    def _op():
        conflict = lock_for_update(
            db.session.query(ScanConflict).filter(ScanConflict.id == conflict_id)
        ).first()
        if conflict is None:
            raise NotFoundError(f"Scan conflict {conflict_id} not found", conflict_id=conflict_id)
        if conflict.is_resolved:
            raise InvalidStateError(f"Scan conflict {conflict_id} is already resolved", conflict_id=conflict_id)

        involved = (conflict.winning_session_id, conflict.conflicting_session_id)
        winner = winning_session_id if winning_session_id is not None else conflict.winning_session_id
        if winner not in involved:
            raise ValidationError(
                f"Session {winner} is not part of conflict {conflict_id}",
                winning_session_id=winner,
                sessions=list(involved),
            )

        if winner != conflict.winning_session_id:
            loser = conflict.winning_session_id
            _set_event_status(winner, conflict.rfid_tag, SCAN_EVENT_RECORDED)
            _set_event_status(loser, conflict.rfid_tag, SCAN_EVENT_CONFLICT)
            conflict.conflicting_session_id = loser
            conflict.winning_session_id = winner

        conflict.is_resolved = True
        conflict.resolution = (resolution or "").strip() or CONFLICT_RESOLUTION_MANUAL
        conflict.resolved_by = resolved_by
        conflict.resolved_at = utcnow()

        append_audit_entry(
            tenant_id=conflict.tenant_id,
            event_type="scan_conflict.resolved",
            entity_type="scan_conflict",
            entity_id=conflict.id,
            note=conflict.rfid_tag,
            payload={"winning_session_id": winner, "resolution": conflict.resolution},
        )
        return conflict

    conflict = run_in_transaction(_op)
    current_app.logger.info(
        "Scan conflict %s on %s resolved: session %s wins",
        conflict.id,
        conflict.rfid_tag,
        conflict.winning_session_id,
    )
    return conflict


def _set_event_status(session_id: int, rfid_tag: str, status: str) -> None:
    event = (
        db.session.query(ScanEvent)
        .filter(ScanEvent.session_id == session_id, func.upper(ScanEvent.rfid_tag) == rfid_tag.upper())
        .first()
    )
    if event is not None:
        event.sync_status = status
