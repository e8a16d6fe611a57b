"""
Half-open time-of-day intervals.

Times of day are handled as integer minutes since midnight. Text values
(``HH:MM`` or ``HH:MM:SS``) are converted at the edges with
``parse_time_of_day`` and ``format_time_of_day``.
"""

import re
from dataclasses import dataclass
from typing import Union

from .exceptions import InvalidIntervalError, InvalidTimeError

MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")

TimeInput = Union[str, int]


def parse_time_of_day(value: TimeInput) -> int:
    """
    Convert ``HH:MM`` / ``HH:MM:SS`` text to minutes since midnight.

    Integers are taken as minutes already. Seconds are truncated. ``24:00`` is
    accepted so that a day can end at midnight.

    Raises:
        InvalidTimeError: If the value is not a valid time of day
    """
    if isinstance(value, int) and not isinstance(value, bool):
        if 0 <= value <= MINUTES_PER_DAY:
            return value
        raise InvalidTimeError(f"Minutes must be between 0 and {MINUTES_PER_DAY}, got {value}")

    if not isinstance(value, str):
        raise InvalidTimeError(f"Invalid time of day: {value!r}")

    match = _TIME_PATTERN.match(value.strip())
    if not match:
        raise InvalidTimeError(f"Invalid time of day {value!r}, expected HH:MM or HH:MM:SS")

    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)

    if minutes > 59 or seconds > 59 or hours > 24 or (hours == 24 and (minutes or seconds)):
        raise InvalidTimeError(f"Time of day out of range: {value!r}")

    return hours * 60 + minutes


def format_time_of_day(minutes: int) -> str:
    """Format minutes since midnight as ``HH:MM:SS``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}:00"


def format_12_hour(minutes: int) -> str:
    """Format minutes since midnight for display, e.g. ``9:30 AM``."""
    hours, mins = divmod(minutes % MINUTES_PER_DAY, 60)
    period = "PM" if hours >= 12 else "AM"
    hour12 = hours % 12 or 12
    return f"{hour12}:{mins:02d} {period}"


@dataclass(frozen=True)
class Interval:
    """
    Immutable half-open interval ``[start, end)`` in minutes since midnight.

    Invariant: start must be before end.
    """
    start: int
    end: int

    def __post_init__(self):
        if not 0 <= self.start <= MINUTES_PER_DAY or not 0 <= self.end <= MINUTES_PER_DAY:
            raise InvalidIntervalError(
                f"Interval bounds must lie within one day, got {self.start}-{self.end}"
            )
        if self.start >= self.end:
            raise InvalidIntervalError(
                f"Start time {format_time_of_day(self.start)} must be before "
                f"end time {format_time_of_day(self.end)}"
            )

    @classmethod
    def parse(cls, start: TimeInput, end: TimeInput) -> "Interval":
        """Build an interval from two time-of-day values."""
        return cls(start=parse_time_of_day(start), end=parse_time_of_day(end))

    @classmethod
    def from_start(cls, start: TimeInput, duration_minutes: int) -> "Interval":
        """Build the interval of ``duration_minutes`` beginning at ``start``."""
        begin = parse_time_of_day(start)
        return cls(start=begin, end=begin + duration_minutes)

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.end - self.start

    def overlaps(self, other: "Interval") -> bool:
        """Check if this interval overlaps another."""
        return overlaps(self, other)

    def contains(self, other: "Interval") -> bool:
        """Check if this interval fully contains another."""
        return contains(self, other)

    def __str__(self) -> str:
        return f"{format_time_of_day(self.start)}-{format_time_of_day(self.end)}"


def overlaps(a: Interval, b: Interval) -> bool:
    """
    Half-open overlap test.

    Intervals that only share an endpoint (``a.end == b.start``) do not overlap.
    """
    return a.start < b.end and b.start < a.end


def contains(outer: Interval, inner: Interval) -> bool:
    """Check that ``inner`` lies entirely within ``outer``."""
    return outer.start <= inner.start and inner.end <= outer.end
