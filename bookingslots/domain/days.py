"""
Calendar dates, business timezones and the canonical day of week.

Every weekday in the application is derived here and nowhere else. The
resolver anchors a date at noon in the business timezone, which keeps it clear
of DST transitions (clustered around 00:00-03:00) and of the UTC date drift a
midnight-based construction suffers when the host runs in another zone.
Nothing in this module reads the host clock or the host timezone: "now" is
always passed in.
"""

import re
from datetime import date as stdlib_date
from datetime import datetime
from enum import IntEnum
from typing import Union

import pendulum
from pendulum import Date, DateTime
from pendulum.tz.timezone import Timezone

from .exceptions import InvalidDateError, InvalidDayError, InvalidTimezoneError

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateInput = Union[str, stdlib_date]


class DayOfWeek(IntEnum):
    """Canonical day of week, Sunday first (sunday=0 .. saturday=6)."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @property
    def label(self) -> str:
        """Lowercase name, the form stored by persistence layers."""
        return self.name.lower()

    @classmethod
    def parse(cls, value: Union["DayOfWeek", int, str]) -> "DayOfWeek":
        """
        Convert any persisted representation into a DayOfWeek.

        Accepts a DayOfWeek, an integer 0-6 (or its digit string) and a day
        name in any case.

        Raises:
            InvalidDayError: If the value does not name a day
        """
        if isinstance(value, cls):
            return value

        if isinstance(value, int) and not isinstance(value, bool):
            if 0 <= value <= 6:
                return cls(value)
            raise InvalidDayError(f"Day number must be between 0 and 6, got {value}")

        if isinstance(value, str):
            key = value.strip()
            if key.isdigit():
                return cls.parse(int(key))
            member = cls.__members__.get(key.upper())
            if member is not None:
                return member

        raise InvalidDayError(f"Unknown day of week: {value!r}")

    def __str__(self) -> str:
        return self.label


DAYS_OF_WEEK = tuple(day.label for day in DayOfWeek)


def parse_calendar_date(value: DateInput) -> Date:
    """
    Normalise a caller-supplied date to a pendulum Date.

    Args:
        value: A ``date`` or a ``YYYY-MM-DD`` string

    Returns:
        pendulum Date (no time of day, no timezone)

    Raises:
        InvalidDateError: If the value is a datetime, malformed, or not a real date
    """
    # datetime is a date subclass but carries a time of day and maybe a zone
    if isinstance(value, datetime):
        raise InvalidDateError(
            f"Expected a calendar date without time of day, got datetime {value!r}"
        )

    if isinstance(value, stdlib_date):
        return pendulum.date(value.year, value.month, value.day)

    if not isinstance(value, str) or not _DATE_PATTERN.match(value.strip()):
        raise InvalidDateError(f"Invalid date {value!r}, expected YYYY-MM-DD")

    year, month, day = (int(part) for part in value.strip().split("-"))
    try:
        return pendulum.date(year, month, day)
    except ValueError as exc:
        raise InvalidDateError(f"Invalid date {value!r}: {exc}") from exc


def load_timezone(name: str) -> Timezone:
    """
    Load an IANA timezone.

    Raises:
        InvalidTimezoneError: If the identifier is empty or unknown
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidTimezoneError(f"Invalid timezone identifier: {name!r}")

    try:
        return pendulum.timezone(name.strip())
    except (ValueError, KeyError) as exc:
        raise InvalidTimezoneError(f"Unknown timezone: {name!r}") from exc


def resolve_day_of_week(date: DateInput, timezone: str) -> DayOfWeek:
    """
    Resolve the day of week of a calendar date in the business timezone.

    The result depends only on ``(date, timezone)``; the host timezone and the
    moment of execution play no part.
    """
    calendar_date = parse_calendar_date(date)
    tz = load_timezone(timezone)

    noon = pendulum.datetime(
        calendar_date.year,
        calendar_date.month,
        calendar_date.day,
        12,
        tz=tz,
    )

    # isoweekday: Monday=1 .. Sunday=7
    return DayOfWeek(noon.isoweekday() % 7)


def to_business_time(now: datetime, timezone: str) -> DateTime:
    """
    Express an instant in the business timezone.

    Raises:
        InvalidDateError: If ``now`` is naive (its zone would be guessed)
    """
    if not isinstance(now, datetime):
        raise InvalidDateError(f"Expected an instant, got {now!r}")
    if now.tzinfo is None or now.utcoffset() is None:
        raise InvalidDateError("The current instant must be timezone-aware")

    return pendulum.instance(now).in_timezone(load_timezone(timezone))


def local_today(now: datetime, timezone: str) -> Date:
    """Calendar date of ``now`` in the business timezone."""
    return to_business_time(now, timezone).date()


def minutes_since_midnight(now: datetime, timezone: str) -> int:
    """Current time of day in the business timezone, in whole minutes."""
    local = to_business_time(now, timezone)
    return local.hour * 60 + local.minute
