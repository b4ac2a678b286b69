"""Relative time formatting for article and comment ages."""
from datetime import datetime, timezone
from typing import Optional


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def time_ago(timestamp: datetime, now: Optional[datetime] = None) -> str:
    """
    Format the age of a timestamp.

    Args:
        timestamp: the moment to describe
        now: reference time, defaults to the current UTC time

    Returns:
        str: "just now", "N min ago", "N h ago" or "N d ago"
    """
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    diff = now - ensure_utc(timestamp)

    minutes = int(diff.total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} min ago"

    hours = minutes // 60
    if hours < 24:
        return f"{hours} h ago"

    return f"{hours // 24} d ago"
