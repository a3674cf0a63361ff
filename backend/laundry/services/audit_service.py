# Overview: Append-only audit trail for workflow transitions.

from __future__ import annotations

import json
from typing import Any, Optional

from ..extensions import db
from ..models import AuditEntry
from ..time_utils import utcnow


def append_audit_entry(
    *,
    tenant_id: int | None,
    event_type: str,
    entity_type: str,
    entity_id: int,
    note: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> AuditEntry:
    """
    Append one audit entry inside the caller's transaction.

    - No domain logic here.
    - No deletes/updates of existing entries (only the tenant cascade removes them).
    """
    entry = AuditEntry(
        tenant_id=tenant_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        occurred_at=utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_audit_entries(
    *,
    tenant_id: int | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 200,
) -> list[AuditEntry]:
    q = db.session.query(AuditEntry)
    if tenant_id is not None:
        q = q.filter(AuditEntry.tenant_id == tenant_id)
    if entity_type is not None:
        q = q.filter(AuditEntry.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditEntry.entity_id == entity_id)
    return q.order_by(AuditEntry.id.desc()).limit(limit).all()
