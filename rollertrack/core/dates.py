"""
Record date handling.

Activity record dates arrive in several shapes depending on who wrote them:
  - "DD/MM/YYYY" strings typed into the record form
  - ISO timestamps ("2025-11-28T10:15:00Z") from API clients and exports
  - epoch seconds, or {"seconds": n, "nanoseconds": m} timestamp objects
  - datetime / date objects from Python callers

All of them collapse to the same comparable instant: midnight UTC of the
calendar day. Day precision in UTC is the one convention used everywhere
(status derivation, sorting, overdue-day counts), so a "DD/MM/YYYY" string
and a timestamp on the same calendar day always compare equal.
"""

import math
import re
from datetime import date, datetime, timedelta, timezone

from dateutil import parser as date_parser

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_DAY = timedelta(days=1)

_DMY_RE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _day_start(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return datetime(dt.year, dt.month, dt.day, tzinfo=timezone.utc)


def parse_record_date(value) -> datetime | None:
    """Parse a record date to midnight UTC of its calendar day.

    Returns None when the value is missing or in no recognized format;
    callers treat that record as undated rather than failing.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _day_start(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return _day_start(datetime.fromtimestamp(value, tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, dict):
        secs = value.get("seconds", value.get("_seconds"))
        if secs is None:
            return None
        return parse_record_date(secs)
    if isinstance(value, str):
        m = _DMY_RE.match(value)
        if m:
            day, month, year = (int(g) for g in m.groups())
            try:
                return datetime(year, month, day, tzinfo=timezone.utc)
            except ValueError:
                return None
        try:
            return _day_start(date_parser.isoparse(value.strip()))
        except (ValueError, OverflowError):
            return None
    return None


def sort_key(value) -> datetime:
    """Sort key for record dates; undated records sort as the epoch."""
    return parse_record_date(value) or EPOCH


def elapsed_days(now: datetime, then: datetime) -> int:
    """Whole days between two instants, rounded up (ceil of |now - then|)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if then.tzinfo is None:
        then = then.replace(tzinfo=timezone.utc)
    return math.ceil(abs((now - then).total_seconds()) / ONE_DAY.total_seconds())


def format_day(value) -> str:
    """Render a record date as DD/MM/YYYY, or 'N/A'."""
    dt = value if isinstance(value, datetime) else parse_record_date(value)
    if dt is None:
        return "N/A"
    return dt.strftime("%d/%m/%Y")


def to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()
