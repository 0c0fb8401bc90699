"""Time utilities."""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def expiry_after(duration_ms: int, now: datetime | None = None) -> datetime:
    """Return the instant `duration_ms` milliseconds after `now`."""
    return (now or utc_now()) + timedelta(milliseconds=duration_ms)
