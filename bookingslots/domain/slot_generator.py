"""
Core business logic for generating bookable slots.

This is the heart of the application - pure domain logic without any
external dependencies (no database, no I/O, no clock reads).
"""

import logging
from collections import Counter
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from .days import DateInput, local_today, minutes_since_midnight, parse_calendar_date
from .exceptions import InvalidDurationError
from .intervals import Interval, contains, overlaps
from .models import ConstraintSet, Slot

logger = logging.getLogger(__name__)

PAST_TIME = "Past time"
OUTSIDE_WORKING_HOURS = "Outside staff working hours"
ALREADY_BOOKED = "Already booked"


def validate_positive_minutes(value: int, name: str) -> int:
    """Reject zero, negative and non-integer durations."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidDurationError(f"{name} must be a positive number of minutes, got {value!r}")
    return value


def today_cutoff(date: DateInput, timezone: str, now: datetime) -> Optional[int]:
    """
    Current minute of the day if ``date`` is today in ``timezone``, else None.

    Slots starting at or before the cutoff are in the past.
    """
    if parse_calendar_date(date) != local_today(now, timezone):
        return None
    return minutes_since_midnight(now, timezone)


class SlotGenerator:
    """
    Generates candidate slots across a business day and classifies each one.

    Algorithm:
    1. Closed days (full-day closure or no business hours) yield no slots
    2. Step through the business window by ``slot_step_minutes``
    3. Each step is a candidate ``[t, t + duration)``
    4. Every constraint is evaluated; the first reason (in fixed priority
       order) is reported for unavailable slots
    """

    def generate(
        self,
        constraints: ConstraintSet,
        slot_step_minutes: int,
        service_duration_minutes: int,
        date: DateInput,
        timezone: str,
        now: datetime,
    ) -> List[Slot]:
        """
        Generate the full slot list for one day.

        Args:
            constraints: Constraint set already filtered to ``date``
            slot_step_minutes: Distance between candidate start times
            service_duration_minutes: Length of each candidate
            date: The calendar date being booked
            timezone: Business timezone, used to decide what "today" is
            now: The current instant (injected, never read here)

        Returns:
            Slots in strictly increasing start order
        """
        validate_positive_minutes(slot_step_minutes, "slot_step_minutes")
        validate_positive_minutes(service_duration_minutes, "service_duration_minutes")

        past_cutoff = today_cutoff(date, timezone, now)

        if constraints.is_closed:
            return []

        window = constraints.business_window
        slots: List[Slot] = []
        reasons: Counter = Counter()

        t = window.start
        while t <= window.end - service_duration_minutes:
            candidate = Interval(start=t, end=t + service_duration_minutes)
            found = self.unavailable_reasons(candidate, constraints, past_cutoff)

            if found:
                reasons[found[0]] += 1
                slots.append(Slot(interval=candidate, available=False, reason=found[0]))
            else:
                slots.append(Slot(interval=candidate, available=True))

            t += slot_step_minutes

        logger.debug(
            "Generated %d slots for %s (%s), %d available, unavailable by reason: %s",
            len(slots),
            constraints.date,
            constraints.day_of_week,
            sum(1 for slot in slots if slot.available),
            dict(reasons),
        )

        return slots

    @classmethod
    def unavailable_reasons(
        cls,
        candidate: Interval,
        constraints: ConstraintSet,
        past_cutoff: Optional[int] = None,
    ) -> List[str]:
        """
        Every reason ``candidate`` cannot be booked, in priority order.

        ``past_cutoff`` is the current minute of the day when the date is
        today, otherwise None. For an any-staff request the candidate is free
        when any one staff member passes every check; otherwise the reasons of
        the first staff member working at that time are reported.
        """
        if constraints.staff_schedules is None:
            return cls._reasons(candidate, constraints, past_cutoff)

        per_staff = [
            cls._reasons(candidate, constraints.for_staff(schedule), past_cutoff)
            for schedule in constraints.staff_schedules
        ]
        if not per_staff:
            return cls._reasons(candidate, replace(constraints, working_windows=[]), past_cutoff)

        for reasons in per_staff:
            if not reasons:
                return []
        for reasons in per_staff:
            if OUTSIDE_WORKING_HOURS not in reasons:
                return reasons
        return per_staff[0]

    @classmethod
    def assign_staff(
        cls,
        candidate: Interval,
        constraints: ConstraintSet,
        past_cutoff: Optional[int] = None,
    ) -> Optional[str]:
        """First staff member (by id) free for ``candidate``, or None."""
        for schedule in constraints.staff_schedules or []:
            if not cls._reasons(candidate, constraints.for_staff(schedule), past_cutoff):
                return schedule.staff_id
        return None

    @staticmethod
    def _reasons(
        candidate: Interval,
        constraints: ConstraintSet,
        past_cutoff: Optional[int],
    ) -> List[str]:
        reasons: List[str] = []

        if past_cutoff is not None and candidate.start <= past_cutoff:
            reasons.append(PAST_TIME)

        if constraints.working_windows is not None and not any(
            contains(window, candidate) for window in constraints.working_windows
        ):
            reasons.append(OUTSIDE_WORKING_HOURS)

        for brk in constraints.breaks:
            if overlaps(candidate, brk.interval):
                reasons.append(brk.reason)
                break

        if any(overlaps(candidate, booked) for booked in constraints.booked_intervals):
            reasons.append(ALREADY_BOOKED)

        for closure in constraints.partial_closures:
            if overlaps(candidate, closure.interval):
                reasons.append(closure.message)
                break

        return reasons
