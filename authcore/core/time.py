"""Utilities for timezone-aware timestamps."""

from datetime import UTC, datetime, timedelta
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(UTC)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def expires_in(now: datetime, ttl_seconds: Optional[float]) -> Optional[datetime]:
    """Absolute expiry for a relative TTL; ``None`` or 0 means never."""
    if not ttl_seconds:
        return None
    return now + timedelta(seconds=ttl_seconds)


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    if expires_at is None:
        return False
    return ensure_aware(expires_at) <= now
