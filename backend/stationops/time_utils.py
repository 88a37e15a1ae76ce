from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    """Drop tzinfo after converting to UTC; naive values are assumed UTC already."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def business_today(tz_name: str) -> date:
    """Calendar date at the stations' local clock."""
    return datetime.now(ZoneInfo(tz_name)).date()


def business_date(dt: datetime, tz_name: str) -> date:
    """Local calendar date of a UTC-naive timestamp."""
    return dt.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name)).date()


def business_stamp(day: date, tz_name: str, now: Optional[datetime] = None) -> datetime:
    """
    UTC-naive timestamp for `day` at the current local wall-clock time.

    Used for entries that name a business date but no time of day.
    """
    local_now = (now or datetime.now(timezone.utc)).astimezone(ZoneInfo(tz_name))
    return as_utc_naive(datetime.combine(day, local_now.timetz()))


def day_bounds(day: date, tz_name: str = "UTC") -> tuple[datetime, datetime]:
    """
    Half-open [start, end) UTC-naive range covering one local calendar day.

    Local midnight is converted to UTC, so in Asia/Bangkok the 5th runs
    from 17:00Z on the 4th to 17:00Z on the 5th.
    """
    tz = ZoneInfo(tz_name)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return as_utc_naive(start), as_utc_naive(end)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """
    Parse "YYYY-MM-DD" (or a full ISO datetime, keeping only its date part).

    - None / "" -> None
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if len(s) > 10:
        return parse_iso_datetime(s).date()
    return date.fromisoformat(s)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
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

    return as_utc_naive(datetime.fromisoformat(s))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Naive datetimes are UTC; output is second precision with a trailing Z."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
