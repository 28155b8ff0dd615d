"""Timestamp helpers.

SQLite hands back naive datetimes even when an aware value was stored, so
every comparison between stored and fresh timestamps goes through
``as_utc``.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current time in UTC. Wrapped so tests can patch it."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat a naive datetime as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def isoformat(value: datetime | None) -> str | None:
    """Serialize a stored timestamp as an ISO-8601 UTC string."""
    value = as_utc(value)
    return value.isoformat().replace("+00:00", "Z") if value else None
