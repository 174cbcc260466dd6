"""Time utilities."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def elapsed_ms(started: datetime, finished: datetime | None = None) -> int:
    """Milliseconds between two timestamps (finished defaults to now)."""
    finished = finished or utc_now()
    return int((finished - started).total_seconds() * 1000)
