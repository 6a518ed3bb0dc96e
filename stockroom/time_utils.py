from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are already UTC."""
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_day(value: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Normalize a calendar-day bound.

    Accepts None, a date, a datetime (its UTC date is used), a "YYYY-MM-DD"
    string or a full ISO-8601 datetime string. Blank strings mean "no bound";
    anything else raises ValueError.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc_naive(value).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if len(s) == 10:
            return date.fromisoformat(s)
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        return to_utc_naive(datetime.fromisoformat(s)).date()
    raise ValueError("invalid date")


def day_bounds(start_day: Optional[date], end_day: Optional[date]) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Turn an inclusive day range into [start, end) datetimes.

    end is the midnight following end_day so the whole last day is included.
    """
    start_dt = datetime.combine(start_day, time.min) if start_day else None
    end_dt = datetime.combine(end_day + timedelta(days=1), time.min) if end_day else None
    return start_dt, end_dt


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
