from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

# All stored datetimes are naive UTC. Session timing, billing and report
# windows compare them directly.


def utcnow() -> datetime:
    """Server clock in naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> naive UTC datetime.

    - None / "" -> None
    - naive input is taken to be UTC already
    - "Z" or a +/-HH:MM offset is converted to UTC
    Raises ValueError on anything else.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_query_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    """parse_iso_datetime for request arguments; bad input is a 400."""
    from .errors import ValidationError

    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", details={field: value})


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as second-precision ISO-8601 with a trailing Z."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def day_bounds(start_date: date, end_date: date) -> tuple[datetime, datetime]:
    """[start_date 00:00, day after end_date 00:00) as naive UTC datetimes."""
    return datetime.combine(start_date, time.min), datetime.combine(end_date + timedelta(days=1), time.min)


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end, never negative."""
    return max(0, int((end - start).total_seconds()))
