# Overview: Accounting collaborator hook: forwards completed deliveries after commit.

from __future__ import annotations

import threading

import httpx
from flask import current_app

from ..events import TransitionEvent

ACCOUNTING_EVENT = "delivery.delivered"


def build_payload(event: TransitionEvent) -> dict:
    return {
        "tenant_id": event.tenant_id,
        "delivery_id": event.payload.get("delivery_id"),
        "barcode": event.payload.get("barcode"),
        "item_type_counts": event.payload.get("item_type_counts", []),
        "delivered_at": event.occurred_at.isoformat() + "Z",
    }


def post_delivery(url: str, payload: dict, timeout: float) -> None:
    response = httpx.post(url, json=payload, timeout=timeout)
    response.raise_for_status()


def _post_logged(app, url: str, payload: dict, timeout: float) -> None:
    with app.app_context():
        try:
            post_delivery(url, payload, timeout)
        except Exception:
            app.logger.exception("Accounting sync failed for delivery %s", payload.get("delivery_id"))
            return
        app.logger.info("Accounting sync sent for delivery %s", payload.get("delivery_id"))


def sync_delivery(event: TransitionEvent) -> None:
    """
    Subscriber for delivery.delivered.

    Without ACCOUNTING_SYNC_URL the delivery is only logged. Failures are
    logged and never reach the delivery transition, which has already
    committed.
    """
    app = current_app._get_current_object()
    payload = build_payload(event)
    url = app.config.get("ACCOUNTING_SYNC_URL")
    if not url:
        app.logger.info(
            "Accounting sync disabled; delivery %s for tenant %s not forwarded",
            payload["delivery_id"],
            payload["tenant_id"],
        )
        return

    timeout = app.config.get("ACCOUNTING_SYNC_TIMEOUT", 5.0)
    if app.config.get("ACCOUNTING_SYNC_ASYNC", True):
        threading.Thread(
            target=_post_logged,
            args=(app, url, payload, timeout),
            name=f"accounting-sync-{payload['delivery_id']}",
            daemon=True,
        ).start()
    else:
        _post_logged(app, url, payload, timeout)


def register_accounting_sync(bus) -> None:
    bus.subscribe(ACCOUNTING_EVENT, sync_delivery)
