"""
Derived staff presence values.

Whether a staff member is on break is computed on read from their break
intervals and the current instant; it is never stored.
"""

from datetime import datetime
from typing import Iterable

from .days import local_today, minutes_since_midnight, resolve_day_of_week
from .models import Break


def is_on_break(breaks: Iterable[Break], now: datetime, timezone: str) -> bool:
    """
    Check if ``now`` falls inside any break recurring on today's weekday.

    Break intervals are half-open, so a break ending at 13:00 is over at 13:00.
    """
    today = local_today(now, timezone)
    day = resolve_day_of_week(today, timezone)
    minute = minutes_since_midnight(now, timezone)

    return any(
        brk.applies_to(day) and brk.interval.start <= minute < brk.interval.end
        for brk in breaks
    )
