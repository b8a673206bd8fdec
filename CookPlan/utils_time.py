from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return the current server time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_datetime(value) -> datetime:
    """Parse an ISO 8601 string (or pass through a datetime) into an aware datetime."""
    if isinstance(value, datetime):
        return ensure_aware(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Not a datetime: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))


def real_time(minutes_relative: int, serve_time: datetime) -> datetime:
    """Wall-clock moment for a serve-relative minute offset (negative = before serve)."""
    return ensure_aware(serve_time) + timedelta(minutes=minutes_relative)


def minutes_from_serve(now: datetime, serve_time: datetime) -> int:
    """
    Whole minutes between serve time and now, floored.
    Negative while the meal is still being cooked.
    """
    delta = ensure_aware(now) - ensure_aware(serve_time)
    return int(delta.total_seconds() // 60)


def format_relative_time(minutes: int) -> str:
    """
    Human readable serve-relative time.
    Example: -135 -> '2h 15m before', 0 -> 'serve time', 10 -> '10 min after serve'
    """
    if minutes == 0:
        return "serve time"
    if minutes > 0:
        return f"{minutes} min after serve"

    abs_minutes = abs(minutes)
    if abs_minutes < 60:
        return f"{abs_minutes} min before"

    hours, mins = divmod(abs_minutes, 60)
    if mins == 0:
        return f"{hours}h before"
    return f"{hours}h {mins}m before"


def format_clock(dt: datetime) -> str:
    """
    Format a datetime in 12-hour am/pm form, e.g. '4:45 PM'.
    Naive datetimes are assumed to be UTC.
    """
    dt = ensure_aware(dt)
    return dt.strftime("%I:%M %p").lstrip("0")


def format_time_remaining(serve_time: datetime, now: datetime) -> str:
    remaining = (ensure_aware(serve_time) - ensure_aware(now)).total_seconds()
    if remaining <= 0:
        return "Serve time!"

    minutes = int(remaining // 60)
    if minutes < 60:
        return f"{minutes}m until dinner"
    hours, mins = divmod(minutes, 60)
    if mins == 0:
        return f"{hours}h until dinner"
    return f"{hours}h {mins}m until dinner"
