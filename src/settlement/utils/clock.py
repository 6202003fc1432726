"""Timestamps are stored and compared as timezone-aware UTC.

Naive datetimes reaching the engine (API payloads without an offset, SQLite
columns) are taken to already be in UTC.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
