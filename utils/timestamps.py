"""
UTC timestamp utilities.

Database columns are `timestamptz`; everything handed to psycopg2 should be a
timezone-aware datetime produced here.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def from_unix(seconds) -> Optional[datetime]:
    """
    Convert a unix timestamp (seconds) to an aware UTC datetime.

    Printful reports `created`, `updated` and `shipped_at` this way.
    Returns None for missing or zero values.
    """
    if not seconds:
        return None
    return datetime.fromtimestamp(float(seconds), tz=timezone.utc)


def to_unix(dt: Optional[datetime]) -> Optional[float]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def hours_between(earlier: datetime, later: datetime) -> float:
    if earlier.tzinfo is None:
        earlier = earlier.replace(tzinfo=timezone.utc)
    if later.tzinfo is None:
        later = later.replace(tzinfo=timezone.utc)
    return (later - earlier).total_seconds() / 3600.0
