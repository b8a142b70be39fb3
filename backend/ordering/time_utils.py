from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def month_key(dt: Optional[datetime] = None) -> str:
    """
    Budget period key ("YYYY-MM") for a UTC-naive datetime.

    Monthly spend and order counters belong to exactly one period; a store
    whose stored period differs from the current one has stale counters.
    """
    dt = dt or utcnow()
    return f"{dt.year:04d}-{dt.month:02d}"


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
