from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # some drivers (SQLite among them) hand stored timestamps back without tzinfo
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
