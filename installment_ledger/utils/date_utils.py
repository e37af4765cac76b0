"""Date manipulation utilities"""

import calendar
from datetime import date, datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


def add_months(from_date: date, months: int, day: Optional[int] = None) -> date:
    """
    Shift a date by whole months, optionally pinning the day of month.

    The day is clamped to the last day of the target month, so Jan 31 + 1
    month is Feb 28 (or 29), never Mar 3.
    """
    month_index = from_date.year * 12 + (from_date.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day or from_date.day, last_day))


def month_index(value: date) -> int:
    """Months since year 0, for whole-month differences"""
    return value.year * 12 + value.month


def get_timezone(name: Optional[str]) -> Optional[tzinfo]:
    return ZoneInfo(name) if name else None


def local_now(tz: Optional[tzinfo] = None) -> datetime:
    """Current wall-clock time in tz (server local time when tz is None)"""
    return datetime.now(tz) if tz else datetime.now()


def parse_calendar_date(value: str, tz: Optional[tzinfo] = None) -> date:
    """
    Parse a stored date into a calendar day.

    Accepts plain "YYYY-MM-DD" and full ISO timestamps. Aware timestamps
    (e.g. "2024-05-09T21:00:00.000Z" written by a browser at local midnight)
    are converted to tz first, so the calendar day is the one the merchant
    saw.
    """
    if not isinstance(value, str):
        raise ValueError(f"Not a date string: {value!r}")
    value = value.strip()
    if "T" not in value and " " not in value:
        return date.fromisoformat(value[:10])

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is not None:
        moment = moment.astimezone(tz) if tz else moment.astimezone()
    return moment.date()
