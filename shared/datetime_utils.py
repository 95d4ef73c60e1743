"""
Date/time helpers: framework-agnostic.

MongoDB hands back naive datetimes unless the client is tz-aware, so every
stored instant goes through :func:`ensure_utc` before it is compared.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime.

    Naive datetimes (no ``tzinfo``) are assumed to be UTC. ``None`` passes
    through unchanged.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    """Return ``True`` once *now* has reached *expires_at*.

    The expiry instant itself counts as expired.
    """
    if expires_at is None:
        return False
    return now >= ensure_utc(expires_at)
