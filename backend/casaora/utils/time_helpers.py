from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Return an aware UTC datetime.

    SQLite hands back naive datetimes for timezone-aware columns; those are
    stored as UTC and are tagged accordingly.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, rounded to nearest."""
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return int(round(seconds / 60))
