"""Timestamp helpers shared by the models."""
from datetime import datetime, timezone


def utc_now():
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def as_naive_utc(value):
    """Normalize aware and naive datetimes to naive UTC.

    SQLite drops tzinfo on the way back from the database, PostgreSQL keeps
    it; both must compare and format the same.
    """
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
