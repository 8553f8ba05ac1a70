# Overview: UTC storage helpers and store-local calendar days.

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def _naive_utc(dt: datetime) -> datetime:
    # Stored timestamps are naive UTC; aware values are converted first
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.replace(tzinfo=None)


def utcnow() -> datetime:
    """Current time as stored in the database (naive UTC)."""
    return _naive_utc(datetime.now(timezone.utc))


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 text from a client or terminal, as naive UTC.

    Offsets (including a trailing Z) are honoured; text without an offset is
    taken to be UTC already. Blank input gives None.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _naive_utc(datetime.fromisoformat(text))


def parse_expiry(value) -> Optional[date]:
    """
    Normalize a batch expiry coming from JSON or a spreadsheet cell.

    Accepts date, datetime, "YYYY-MM-DD" or a full ISO datetime string.
    Blank values mean "no expiry".
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    if len(s) == 10:
        return date.fromisoformat(s)
    return parse_iso_datetime(s).date()


def local_day_bounds(day: str | date, tz_name: str) -> tuple[datetime, datetime]:
    """
    UTC-naive [start, end) bounds of a calendar day in the given timezone.

    Sales and shift listings filter "by date" the way cashiers see the
    clock in the store, not by UTC midnight.
    """
    if isinstance(day, str):
        day = date.fromisoformat(day.strip())
    tz = ZoneInfo(tz_name)
    start_local = datetime.combine(day, time.min, tzinfo=tz)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return _naive_utc(start_local), _naive_utc(end_local)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a Z suffix; naive values are UTC."""
    if dt is None:
        return None
    stamp = _naive_utc(dt).replace(microsecond=0)
    return stamp.isoformat() + "Z"


def to_iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None
