# Overview: In-process publish/subscribe for workflow transition events.

"""
Transition events are the abstract "something happened" signal consumed by
notification channels and the accounting collaborator.

Events are queued on the current DB session while a transition runs and are
only dispatched after that transaction commits; a rollback discards them.
Handler failures are logged and never propagate back into the transition.

Usage:
    events.subscribe("delivery.delivered", handler)   # one event type
    events.subscribe("*", handler)                    # everything
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from flask import current_app

from .time_utils import utcnow

WILDCARD = "*"
_PENDING_KEY = "laundry.pending_events"


@dataclass(frozen=True)
class TransitionEvent:
    event_type: str
    tenant_id: int
    payload: dict[str, Any]
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "tenant_id": self.tenant_id,
            "payload": dict(self.payload),
            "occurred_at": self.occurred_at.isoformat() + "Z",
        }


Handler = Callable[[TransitionEvent], None]


class EventBus:
    """Subscriber registry plus the session-bound queue of pending events."""

    def __init__(self, app=None):
        self._subscribers: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions["laundry.events"] = self

    def subscribe(self, event_type: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def handlers_for(self, event_type: str) -> list[Handler]:
        with self._lock:
            return list(self._subscribers.get(event_type, [])) + list(self._subscribers.get(WILDCARD, []))

    # -- session-bound queue -------------------------------------------------

    def emit(self, event_type: str, tenant_id: int, **payload: Any) -> TransitionEvent:
        """Queue an event on the current session; dispatched after commit."""
        from .extensions import db

        event = TransitionEvent(event_type=event_type, tenant_id=tenant_id, payload=payload)
        db.session.info.setdefault(_PENDING_KEY, []).append(event)
        return event

    def pending(self) -> list[TransitionEvent]:
        from .extensions import db

        return list(db.session.info.get(_PENDING_KEY, []))

    def discard_pending(self) -> None:
        from .extensions import db

        db.session.info.pop(_PENDING_KEY, None)

    def dispatch_pending(self) -> int:
        """Deliver queued events to subscribers. Returns the number of events sent."""
        from .extensions import db

        queued = db.session.info.pop(_PENDING_KEY, [])
        for event in queued:
            self.publish(event)
        return len(queued)

    def publish(self, event: TransitionEvent) -> None:
        for handler in self.handlers_for(event.event_type):
            try:
                handler(event)
            except Exception:
                current_app.logger.exception(
                    "Event handler %s failed for %s (tenant %s)",
                    getattr(handler, "__name__", repr(handler)),
                    event.event_type,
                    event.tenant_id,
                )
