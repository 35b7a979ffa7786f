"""
Calendar helpers for chore due dates.

All functions take and return naive local datetimes. "End" of a period is
its last whole second. Week boundaries follow ``first_weekday`` (Python
``calendar`` numbering, Monday=0), defaulting to ``calendar.firstweekday()``.
"""

import calendar
import re
from datetime import datetime, timedelta
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta

from chorekeeper.entities import Weekday

ONE_SECOND = timedelta(seconds=1)

_TIME_RE = re.compile(r'(\d{1,2}):(\d{2})', re.ASCII)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(moment: datetime) -> datetime:
    return start_of_day(moment) + timedelta(days=1) - ONE_SECOND


def start_of_week(moment: datetime, first_weekday: Optional[int] = None) -> datetime:
    if first_weekday is None:
        first_weekday = calendar.firstweekday()
    offset = (moment.weekday() - first_weekday) % 7
    return start_of_day(moment) - timedelta(days=offset)


def end_of_week(moment: datetime, first_weekday: Optional[int] = None) -> datetime:
    return start_of_week(moment, first_weekday) + timedelta(days=7) - ONE_SECOND


def start_of_month(moment: datetime) -> datetime:
    return start_of_day(moment).replace(day=1)


def end_of_month(moment: datetime) -> datetime:
    return start_of_next_month(moment) - ONE_SECOND


def start_of_next_month(moment: datetime) -> datetime:
    return start_of_month(moment) + relativedelta(months=1)


def end_of_next_month(moment: datetime) -> datetime:
    return start_of_month(moment) + relativedelta(months=2) - ONE_SECOND


def start_of_year(moment: datetime) -> datetime:
    return start_of_day(moment).replace(month=1, day=1)


def end_of_year(moment: datetime) -> datetime:
    return start_of_year(moment) + relativedelta(years=1) - ONE_SECOND


def days_in_month(month: int, year: int) -> int:
    """Number of days in a month, leap years included."""
    return calendar.monthrange(year, month)[1]


def last_day_of_month(month: int, year: int) -> datetime:
    """Midnight on the last calendar day of the given month."""
    return datetime(year, month, days_in_month(month, year))


def last_day_of_month_for(moment: datetime) -> datetime:
    return last_day_of_month(moment.month, moment.year)


def weekday_of(moment: datetime) -> Weekday:
    return Weekday.from_python(moment.weekday())


def day_of_month(moment: datetime) -> int:
    return moment.day


def next_occurrence_of_weekday(weekday: int, from_date: datetime) -> datetime:
    """
    Find the next day falling on ``weekday`` strictly after ``from_date``.

    If ``from_date`` is already that weekday the result is one week later.

    Args:
        weekday: Weekday number, Sunday=1 through Saturday=7
        from_date: Reference moment

    Returns:
        Midnight of the next matching day
    """
    target = Weekday(weekday).to_python()
    offset = (target - from_date.weekday()) % 7 or 7
    return start_of_day(from_date) + timedelta(days=offset)


def next_occurrence_of_day_of_month(day: int, from_date: datetime) -> datetime:
    """
    Find the next occurrence of a day-of-month strictly after ``from_date``.

    Months shorter than ``day`` use their last day instead, so a day-31 rule
    lands on Feb 28/29 and Apr 30 and comes back to the 31st afterwards.

    Args:
        day: Day of month, 1-31
        from_date: Reference moment

    Returns:
        Midnight of the next matching day
    """
    if not 1 <= day <= 31:
        raise ValueError(f"Day of month must be between 1 and 31, got {day}")

    base = start_of_day(from_date)
    target_day = min(day, days_in_month(base.month, base.year))
    if target_day > base.day:
        return base.replace(day=target_day)

    next_month = start_of_next_month(base)
    return next_month.replace(day=min(day, days_in_month(next_month.month, next_month.year)))


def next_occurrence_of_last_day_of_month(from_date: datetime) -> datetime:
    """Last day of this month, or of next month if ``from_date`` is already on it."""
    base = start_of_day(from_date)
    this_month = last_day_of_month_for(base)
    if base < this_month:
        return this_month
    return last_day_of_month_for(start_of_next_month(base))


def parse_time_string(value: str) -> Optional[Tuple[int, int]]:
    """
    Parse an ``HH:MM`` string.

    Returns:
        (hour, minute), or None if the string is malformed or out of range
    """
    if not isinstance(value, str):
        return None
    match = _TIME_RE.fullmatch(value)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def format_time(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def set_time(moment: datetime, hour: int, minute: int) -> datetime:
    """Keep the calendar day of ``moment`` and set an explicit time of day."""
    return moment.replace(hour=hour, minute=minute, second=0, microsecond=0)


def set_time_string(moment: datetime, value: str) -> Optional[datetime]:
    parsed = parse_time_string(value)
    if parsed is None:
        return None
    return set_time(moment, *parsed)
