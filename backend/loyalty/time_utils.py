from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

# All timestamps are stored and compared as naive UTC. Conversions happen
# only at the edges: parse_iso_datetime on input, to_utc_z on output.


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    """Aware -> converted to UTC and stripped; naive -> assumed UTC already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 text -> naive UTC. Blank or None gives None; a trailing Z and
    numeric offsets are honored. Raises ValueError on anything else.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing Z (e.g. 2026-01-31T09:00:00Z)."""
    if dt is None:
        return None
    return to_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"
