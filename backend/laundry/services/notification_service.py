# Overview: Default transition-event subscriber: one log line per committed transition.

from __future__ import annotations

from flask import current_app

from ..events import WILDCARD, TransitionEvent


def log_transition(event: TransitionEvent) -> None:
    """Notification channels hook in next to this; delivery itself is out of scope."""
    payload = event.payload
    current_app.logger.info(
        "event=%s tenant=%s ref=%s items=%s",
        event.event_type,
        event.tenant_id,
        payload.get("barcode") or payload.get("bag_code"),
        payload.get("item_count"),
    )


def register_transition_logging(bus) -> None:
    bus.subscribe(WILDCARD, log_transition)
