from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into a UTC-naive datetime.

    Empty input gives None. Naive input is taken as UTC; a trailing "Z" or
    an explicit offset is converted to UTC.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ISO-8601 with a trailing 'Z' (naive means UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def base36_stamp(dt: Optional[datetime] = None) -> str:
    """Millisecond epoch of dt (default now) in upper-case base36, for printed codes."""
    dt = dt or utcnow()
    millis = int(dt.replace(tzinfo=timezone.utc).timestamp() * 1000)
    digits = []
    while millis:
        millis, rem = divmod(millis, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"
