"""Time and timezone utilities."""

from datetime import datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def normalize_timezone(dt: datetime, target_tz: timezone = timezone.utc) -> datetime:
    """
    Normalize datetime to target timezone.

    Args:
        dt: Input datetime
        target_tz: Target timezone (default UTC)

    Returns:
        Datetime in target timezone
    """
    if dt.tzinfo is None:
        # Assume UTC if no timezone
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(target_tz)


def date_key(dt: Optional[datetime] = None) -> str:
    """Daily bucket key (YYYY-MM-DD, UTC) used to dedupe events."""
    dt = normalize_timezone(dt) if dt else utc_now()
    return dt.strftime("%Y-%m-%d")


def days_ago(days: int, now: Optional[datetime] = None) -> datetime:
    """Cutoff datetime ``days`` before ``now``."""
    return (now or utc_now()) - timedelta(days=days)


def get_age_days(dt: datetime, now: Optional[datetime] = None) -> float:
    """Get age of datetime in days from now."""
    now = normalize_timezone(now) if now else utc_now()
    delta = now - normalize_timezone(dt)
    return delta.total_seconds() / 86400


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ISO 8601 UTC, tolerating naive values from SQLite."""
    if dt is None:
        return None
    return normalize_timezone(dt).isoformat().replace("+00:00", "Z")
