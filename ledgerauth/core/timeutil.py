"""UTC time helpers."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def is_expired(expiry: datetime, now: datetime | None = None) -> bool:
    """Compare against a stored expiry, which SQLite returns without tzinfo."""
    current = now or utcnow()
    if expiry.tzinfo is None:
        current = current.replace(tzinfo=None)
    return current >= expiry
