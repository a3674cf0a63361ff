# Overview: Domain error taxonomy shared by services, routes and the CLI.

"""
Every workflow operation validates its preconditions before writing and
raises one of these. Callers map them to HTTP status codes:

    NotFoundError      -> 404  (entity id / tag / barcode does not exist)
    ConflictError      -> 409  (duplicate tag, bag code, barcode, email;
                                delete blocked by a live reference)
    InvalidStateError  -> 409  (transition from the wrong state, item
                                already claimed by an open batch)
    ValidationError    -> 400  (malformed input)
"""

from __future__ import annotations

from typing import Any


class LaundryError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(LaundryError):
    status_code = 404
    error_code = "NOT_FOUND"


class ConflictError(LaundryError):
    status_code = 409
    error_code = "CONFLICT"


class InvalidStateError(LaundryError):
    status_code = 409
    error_code = "INVALID_STATE"


class ValidationError(LaundryError):
    status_code = 400
    error_code = "VALIDATION_ERROR"
