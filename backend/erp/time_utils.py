from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is midnight UTC of that day
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
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


def coerce_datetime(value) -> Optional[datetime]:
    """Accept a datetime, a date, an ISO string or None; return UTC-naive."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError(f"cannot interpret {value!r} as a datetime")


def range_bounds(start, end) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Normalize an inclusive reporting range.

    A bare date (or a date-only string) as the end bound covers that whole day.
    """
    start_dt = coerce_datetime(start)
    end_dt = coerce_datetime(end)
    end_is_day = isinstance(end, date) and not isinstance(end, datetime)
    if isinstance(end, str) and len(end.strip()) == 10:
        end_is_day = True
    if end_dt is not None and end_is_day:
        end_dt = datetime.combine(end_dt.date(), time.max)
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
