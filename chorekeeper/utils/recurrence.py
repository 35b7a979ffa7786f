"""
Recurrence pattern codec.

Patterns are stored on chores as compact strings::

    one_time
    daily:22:00
    weekly:1,4:18:00        (Sunday=1 ... Saturday=7)
    monthly:15:08:30
    monthly:last:22:00

The trailing ``HH:MM`` is optional when parsing and defaults to 22:00.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Iterable, List, Optional, Union

from chorekeeper.entities import Frequency, Weekday
from chorekeeper.errors import InvalidRecurringPatternError
from chorekeeper.utils.dates import day_of_month, days_in_month, format_time, parse_time_string, weekday_of

DEFAULT_DUE_TIME = '22:00'
DEFAULT_DUE_HOUR = 22
DEFAULT_DUE_MINUTE = 0

LAST_DAY_TOKEN = 'last'

_DAY_RE = re.compile(r'\d{1,2}', re.ASCII)


@dataclass(frozen=True)
class RecurringPattern:
    """A parsed recurrence rule. Construction enforces its invariants."""

    frequency: Frequency
    days_of_week: FrozenSet[Weekday] = field(default_factory=frozenset)
    day_of_month: Optional[int] = None
    use_last_day_of_month: bool = False
    due_hour: int = DEFAULT_DUE_HOUR
    due_minute: int = DEFAULT_DUE_MINUTE

    def __post_init__(self):
        try:
            frequency = Frequency(self.frequency)
            days = frozenset(Weekday(day) for day in self.days_of_week)
        except ValueError as e:
            raise InvalidRecurringPatternError(str(e)) from e
        object.__setattr__(self, 'frequency', frequency)
        object.__setattr__(self, 'days_of_week', days)

        if not (0 <= self.due_hour <= 23 and 0 <= self.due_minute <= 59):
            raise InvalidRecurringPatternError(
                f"Invalid due time {self.due_hour}:{self.due_minute}"
            )

        if frequency == Frequency.WEEKLY:
            if not days:
                raise InvalidRecurringPatternError("Weekly patterns need at least one day of the week")
        elif days:
            raise InvalidRecurringPatternError("Days of week are only allowed on weekly patterns")

        if frequency == Frequency.MONTHLY:
            if self.use_last_day_of_month == (self.day_of_month is not None):
                raise InvalidRecurringPatternError(
                    "Monthly patterns need exactly one of day_of_month or use_last_day_of_month"
                )
            if self.day_of_month is not None and not 1 <= self.day_of_month <= 31:
                raise InvalidRecurringPatternError(
                    f"Day of month must be between 1 and 31, got {self.day_of_month}"
                )
        elif self.day_of_month is not None or self.use_last_day_of_month:
            raise InvalidRecurringPatternError("Day of month is only allowed on monthly patterns")

    @property
    def due_time(self) -> str:
        return format_time(self.due_hour, self.due_minute)

    def __str__(self):
        return to_string(self)


def parse(text: str) -> Optional[RecurringPattern]:
    """
    Parse a stored pattern string.

    Args:
        text: Pattern string such as ``weekly:1,4:18:00``

    Returns:
        RecurringPattern, or None if any part of the string is invalid
    """
    if not isinstance(text, str) or not text:
        return None

    tokens = text.split(':')
    frequency_token = tokens[0]
    if frequency_token in (Frequency.ONE_TIME.value, Frequency.DAILY.value):
        body, time_tokens = [], tokens[1:]
    elif frequency_token in (Frequency.WEEKLY.value, Frequency.MONTHLY.value):
        if len(tokens) < 2:
            return None
        body, time_tokens = tokens[1:2], tokens[2:]
    else:
        return None

    if time_tokens:
        if len(time_tokens) != 2:
            return None
        due_time = parse_time_string(':'.join(time_tokens))
        if due_time is None:
            return None
    else:
        due_time = (DEFAULT_DUE_HOUR, DEFAULT_DUE_MINUTE)
    hour, minute = due_time

    frequency = Frequency(frequency_token)
    try:
        if frequency == Frequency.WEEKLY:
            days = _parse_weekdays(body[0])
            if days is None:
                return None
            return RecurringPattern(frequency, days_of_week=days, due_hour=hour, due_minute=minute)

        if frequency == Frequency.MONTHLY:
            if body[0] == LAST_DAY_TOKEN:
                return RecurringPattern(frequency, use_last_day_of_month=True,
                                        due_hour=hour, due_minute=minute)
            if not _DAY_RE.fullmatch(body[0]):
                return None
            return RecurringPattern(frequency, day_of_month=int(body[0]),
                                    due_hour=hour, due_minute=minute)

        return RecurringPattern(frequency, due_hour=hour, due_minute=minute)
    except InvalidRecurringPatternError:
        return None


def _parse_weekdays(token: str) -> Optional[FrozenSet[Weekday]]:
    days = set()
    for part in token.split(','):
        if not part.isascii() or not part.isdigit() or len(part) != 1:
            return None
        value = int(part)
        if not 1 <= value <= 7:
            return None
        days.add(Weekday(value))
    return frozenset(days) or None


def to_string(pattern: RecurringPattern) -> str:
    """Serialize a pattern to its canonical string form."""
    time_string = pattern.due_time

    if pattern.frequency == Frequency.ONE_TIME:
        # One-time patterns only carry a time when it differs from the default
        if time_string == DEFAULT_DUE_TIME:
            return Frequency.ONE_TIME.value
        return f"{Frequency.ONE_TIME.value}:{time_string}"

    if pattern.frequency == Frequency.DAILY:
        return f"daily:{time_string}"

    if pattern.frequency == Frequency.WEEKLY:
        days = ','.join(str(int(day)) for day in sorted(pattern.days_of_week))
        return f"weekly:{days}:{time_string}"

    if pattern.use_last_day_of_month:
        return f"monthly:{LAST_DAY_TOKEN}:{time_string}"
    return f"monthly:{pattern.day_of_month}:{time_string}"


def is_valid(text: str) -> bool:
    return parse(text) is not None


def _due_time(due_time: str):
    parsed = parse_time_string(due_time)
    if parsed is None:
        raise InvalidRecurringPatternError(f'Invalid due time "{due_time}", expected HH:MM')
    return parsed


def build_pattern(frequency: Union[Frequency, str],
                  days_of_week: Optional[Iterable[int]] = None,
                  day_of_month: Optional[int] = None,
                  use_last_day_of_month: bool = False,
                  due_time: str = DEFAULT_DUE_TIME) -> RecurringPattern:
    """
    Build a pattern from the choices made when creating a recurring chore.

    Raises:
        InvalidRecurringPatternError: The combination of choices is invalid
    """
    try:
        frequency = Frequency(frequency)
    except ValueError:
        raise InvalidRecurringPatternError(f'Unknown frequency "{frequency}"')

    hour, minute = _due_time(due_time)

    if frequency == Frequency.WEEKLY:
        return RecurringPattern(frequency, days_of_week=frozenset(days_of_week or ()),
                                due_hour=hour, due_minute=minute)

    if frequency == Frequency.MONTHLY:
        if use_last_day_of_month:
            return RecurringPattern(frequency, use_last_day_of_month=True,
                                    due_hour=hour, due_minute=minute)
        return RecurringPattern(frequency, day_of_month=day_of_month,
                                due_hour=hour, due_minute=minute)

    return RecurringPattern(frequency, due_hour=hour, due_minute=minute)


def create_daily_pattern(due_time: str = DEFAULT_DUE_TIME) -> str:
    return to_string(build_pattern(Frequency.DAILY, due_time=due_time))


def create_weekly_pattern(days_of_week: Iterable[int], due_time: str = DEFAULT_DUE_TIME) -> str:
    return to_string(build_pattern(Frequency.WEEKLY, days_of_week=days_of_week, due_time=due_time))


def create_monthly_pattern(day_of_month: int, due_time: str = DEFAULT_DUE_TIME) -> str:
    return to_string(build_pattern(Frequency.MONTHLY, day_of_month=day_of_month, due_time=due_time))


def create_last_day_of_month_pattern(due_time: str = DEFAULT_DUE_TIME) -> str:
    return to_string(build_pattern(Frequency.MONTHLY, use_last_day_of_month=True, due_time=due_time))


# Accessors for callers that only hold the stored string

def get_frequency(text: str) -> Optional[Frequency]:
    pattern = parse(text)
    return pattern.frequency if pattern else None


def get_days_of_week(text: str) -> List[Weekday]:
    pattern = parse(text)
    return sorted(pattern.days_of_week) if pattern else []


def get_day_of_month(text: str) -> Optional[int]:
    pattern = parse(text)
    return pattern.day_of_month if pattern else None


def uses_last_day_of_month(text: str) -> bool:
    pattern = parse(text)
    return bool(pattern and pattern.use_last_day_of_month)


def get_due_time(text: str) -> Optional[str]:
    pattern = parse(text)
    return pattern.due_time if pattern else None


def matches_pattern(pattern: RecurringPattern, moment: datetime) -> bool:
    """
    Check if a timestamp is an occurrence of the pattern.

    Both the calendar day and the exact due time must match. One-time
    patterns never match.
    """
    if pattern.frequency == Frequency.ONE_TIME:
        return False

    if (moment.hour, moment.minute, moment.second, moment.microsecond) != \
            (pattern.due_hour, pattern.due_minute, 0, 0):
        return False

    if pattern.frequency == Frequency.DAILY:
        return True

    if pattern.frequency == Frequency.WEEKLY:
        return weekday_of(moment) in pattern.days_of_week

    month_length = days_in_month(moment.month, moment.year)
    if pattern.use_last_day_of_month:
        return day_of_month(moment) == month_length
    return day_of_month(moment) == min(pattern.day_of_month, month_length)


def describe_pattern(pattern: RecurringPattern) -> str:
    """Human-readable summary, e.g. ``every Sunday, Wednesday at 18:00``."""
    if pattern.frequency == Frequency.ONE_TIME:
        return f"once at {pattern.due_time}"
    if pattern.frequency == Frequency.DAILY:
        return f"every day at {pattern.due_time}"
    if pattern.frequency == Frequency.WEEKLY:
        names = ', '.join(day.name.title() for day in sorted(pattern.days_of_week))
        return f"every {names} at {pattern.due_time}"
    if pattern.use_last_day_of_month:
        return f"on the last day of every month at {pattern.due_time}"
    return f"on day {pattern.day_of_month} of every month at {pattern.due_time}"
