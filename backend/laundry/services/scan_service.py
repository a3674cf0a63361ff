# Overview: RFID Reconciliation: match a raw bulk scan against known items (read-only).

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import func

from ..extensions import db
from ..models import Item
from .item_service import normalize_tag


@dataclass
class ScanResult:
    items: list[Item] = field(default_factory=list)
    not_found_tags: list[str] = field(default_factory=list)

    @property
    def found(self) -> int:
        return len(self.items)

    @property
    def not_found(self) -> int:
        return len(self.not_found_tags)

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "found": self.found,
            "notFound": self.not_found,
            "notFoundTags": list(self.not_found_tags),
        }


def _dedupe(tags: Iterable) -> list:
    """Strip and dedupe case-insensitively, keeping the first spelling seen."""
    seen = set()
    unique = []
    for raw in tags:
        text = raw.strip() if isinstance(raw, str) else raw
        key = text.upper() if isinstance(text, str) else repr(text)
        if key in seen:
            continue
        seen.add(key)
        unique.append(text)
    return unique


def scan(tags: Iterable, tenant_id: Optional[int] = None) -> ScanResult:
    """
    Reconcile a list of scanned tags against the item ledger.

    Never raises for bad input and never writes: empty or malformed tags
    land in not_found_tags. With tenant_id, another hotel's items count as
    not found. Scanning the same tag twice in one call counts it once.

    found + not_found always equals the number of distinct input tags.
    """
    unique = _dedupe(tags)

    valid = {}
    for raw in unique:
        tag = normalize_tag(raw)
        if tag is not None:
            valid[tag.upper()] = tag

    matched: dict[str, Item] = {}
    if valid:
        rows = db.session.query(Item).filter(func.upper(Item.rfid_tag).in_(list(valid))).all()
        for item in rows:
            if tenant_id is not None and item.tenant_id != tenant_id:
                continue
            matched[item.rfid_tag.upper()] = item

    result = ScanResult()
    for raw in unique:
        tag = normalize_tag(raw)
        item = matched.get(tag.upper()) if tag is not None else None
        if item is None:
            result.not_found_tags.append(raw if isinstance(raw, str) else str(raw))
        else:
            result.items.append(item)
    return result
