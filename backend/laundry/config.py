# backend/laundry/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float | None) -> float | None:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return float(value)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/laundry.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///laundry.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Scanner input is trimmed before it is matched against this pattern
    RFID_TAG_PATTERN = os.environ.get("RFID_TAG_PATTERN", r"^[A-Za-z0-9][A-Za-z0-9_:.\-]{0,127}$")

    # Delivery barcodes are zero-padded sequential numbers ("000000001")
    DELIVERY_BARCODE_PAD = int(os.environ.get("DELIVERY_BARCODE_PAD", "9"))

    # None disables the driver/hotel proximity check on delivery
    DELIVERY_MAX_DISTANCE_METERS = _env_float("DELIVERY_MAX_DISTANCE_METERS", 300.0)

    # Accounting collaborator; unset means deliveries are only logged
    ACCOUNTING_SYNC_URL = os.environ.get("ACCOUNTING_SYNC_URL")
    ACCOUNTING_SYNC_TIMEOUT = _env_float("ACCOUNTING_SYNC_TIMEOUT", 5.0)
    ACCOUNTING_SYNC_ASYNC = _env_bool("ACCOUNTING_SYNC_ASYNC", True)

    # Two sessions of the same type reading one tag this close together conflict
    SCAN_CONFLICT_WINDOW_SECONDS = int(os.environ.get("SCAN_CONFLICT_WINDOW_SECONDS", "3600"))
