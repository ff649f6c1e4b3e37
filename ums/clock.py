"""
UTC time helpers.

All timestamps are stored as UTC. SQLite hands datetimes back without tzinfo,
so values read from the store go through as_utc() before being compared with
utc_now().
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to a naive datetime; convert an aware one to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
