# Overview: Unit-of-work helpers: row locking, retry on lock conflicts, commit-or-rollback.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db, events

# Errors worth another attempt: lock timeouts/deadlocks and lost version races
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on batch headers and member items.

    NOTE: SQLite ignores FOR UPDATE; there the version columns on Item,
    Pickup and Delivery catch concurrent writers instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func, retrying RETRYABLE_ERRORS with exponential backoff.

    The session is rolled back before each new attempt. Domain errors
    propagate immediately; the last retryable error is re-raised.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            current_app.logger.warning(
                "Concurrent update conflict (%s), retry %d/%d",
                type(exc).__name__,
                attempt,
                attempts - 1,
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func as one atomic unit of work.

    Commits when func returns; rolls back (and drops queued transition
    events) when func or the commit raises. Queued events are dispatched
    only after a successful commit.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
        except Exception:
            db.session.rollback()
            events.discard_pending()
            raise
        events.dispatch_pending()
        return result

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
