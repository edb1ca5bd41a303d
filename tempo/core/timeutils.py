# /app/tempo/core/timeutils.py

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalizes a datetime to UTC. Naive values (SQLite drops tz info on the
    way back) are taken to already be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat().replace("+00:00", "Z") if value is not None else None
