from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime string and normalize to UTC-naive.

    - None / "" -> None
    - "YYYY-MM-DD" -> midnight of that day
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped

    Raises ValueError on malformed input.
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


def end_of_day_if_date_only(value: Optional[str], parsed: Optional[datetime]) -> Optional[datetime]:
    """
    Widen a bare "YYYY-MM-DD" upper bound to the last microsecond of that day
    so that inclusive date ranges behave the way users expect.
    """
    if parsed is None or value is None:
        return parsed
    if len(value.strip()) == 10:
        return parsed + timedelta(days=1) - timedelta(microseconds=1)
    return parsed


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


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move (year, month) by delta calendar months."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_label(year: int, month: int) -> str:
    """Short label used by the dashboard series, e.g. "Oct 2026"."""
    return date(year, month, 1).strftime("%b %Y")


def day_key(value) -> str:
    """
    Normalize a date, datetime or 'YYYY-MM-DD...' string to 'YYYY-MM-DD'.

    SQLite returns func.date() results as strings, PostgreSQL as date objects.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]
