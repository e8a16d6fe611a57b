"""
Constraint aggregation for one booking date.

The aggregator resolves the day of week once and asks a ``ScheduleReader``
for every row that applies to that date, so the slot generator never has to
derive the weekday itself. Depending on a protocol keeps the data source
pluggable: the in-memory store, the SQL store, or a transaction of either.
"""

from __future__ import annotations

import logging
from typing import Callable, ContextManager, Dict, Iterable, List, Optional, Protocol

from pendulum import Date

from ..domain.days import DateInput, DayOfWeek, parse_calendar_date, resolve_day_of_week
from ..domain.intervals import Interval
from ..domain.models import ANY_STAFF, Appointment, Break, ClosureInfo, ConstraintSet, StaffSchedule

logger = logging.getLogger(__name__)


class ScheduleReader(Protocol):
    """Read queries the core needs from the schedule collaborators."""

    def get_business_hours(self, day: DayOfWeek) -> Optional[Interval]:
        """Opening hours for a weekday, None when closed."""

    def get_working_hours(self, staff_id: str, day: DayOfWeek) -> List[Interval]:
        """Working windows of one staff member, or of everyone for ``ANY_STAFF``."""

    def get_staff_working_hours(self, day: DayOfWeek) -> Dict[str, List[Interval]]:
        """Working windows of every staff member scheduled on a weekday, keyed by staff id."""

    def get_breaks(self, day: DayOfWeek, staff_id: Optional[str] = None) -> List[Break]:
        """Admin breaks when ``staff_id`` is None, personal breaks otherwise."""

    def get_closures(self, date: Date) -> ClosureInfo:
        """Full-day and partial closures recorded for a date."""

    def get_appointments(self, date: Date, staff_id: Optional[str] = None) -> List[Appointment]:
        """Appointments on a date, narrowed to one staff member when given."""


class SnapshotSource(Protocol):
    """A store able to serve several reads from one consistent point in time."""

    def snapshot(self) -> ContextManager[ScheduleReader]:
        """
        Open a read-only view. Every read made through it sees the same
        committed state; nothing is written.
        """


class ConstraintAggregator:
    """
    Gathers the constraints that apply to a date, optionally for one staff member.

    ``staff_id`` selects the staff dimension:
    - None: shop-level booking, business hours alone bound the day
    - ANY_STAFF: the union of every staff member's working windows, with
      each member's own breaks and bookings kept in ``staff_schedules``
    - a concrete id: that staff member's windows and personal breaks

    Unassigned appointments block every staff member.
    """

    def __init__(self, reader: ScheduleReader) -> None:
        self._reader = reader

    def aggregate(
        self,
        date: DateInput,
        timezone: str,
        staff_id: Optional[str] = None,
    ) -> ConstraintSet:
        """Fetch and day-filter every constraint for ``date``."""
        calendar_date = parse_calendar_date(date)
        day = resolve_day_of_week(calendar_date, timezone)

        closures = self._reader.get_closures(calendar_date)
        appointments = [
            appt for appt in self._reader.get_appointments(calendar_date)
            if appt.blocks_availability
        ]

        constraints = ConstraintSet(
            date=calendar_date,
            day_of_week=day,
            business_window=self._reader.get_business_hours(day),
            full_day_closed=closures.full_day,
            closure_reason=closures.reason,
            partial_closures=list(closures.partial),
        )

        if staff_id == ANY_STAFF:
            schedules = self._staff_schedules(day, appointments)
            constraints.working_windows = _sorted_intervals(
                window for schedule in schedules for window in schedule.working_windows
            )
            constraints.breaks = self._breaks(day)
            constraints.booked_intervals = _booked(appointments, lambda owner: owner is None)
            constraints.staff_schedules = schedules
        elif staff_id is not None:
            constraints.working_windows = _sorted_intervals(self._reader.get_working_hours(staff_id, day))
            constraints.breaks = self._breaks(day, staff_id)
            constraints.booked_intervals = _booked(appointments, lambda owner: owner in (None, staff_id))
        else:
            constraints.breaks = self._breaks(day)
            constraints.booked_intervals = _booked(appointments, lambda owner: True)

        logger.debug(
            "Constraints for %s (%s, staff=%s): window=%s, closed=%s, %d breaks, "
            "%d partial closures, %d booked",
            calendar_date,
            day,
            staff_id,
            constraints.business_window,
            constraints.full_day_closed,
            len(constraints.breaks),
            len(constraints.partial_closures),
            len(constraints.booked_intervals),
        )

        return constraints

    def _breaks(self, day: DayOfWeek, staff_id: Optional[str] = None) -> List[Break]:
        """
        Admin breaks plus the staff member's personal breaks.

        Rows whose stored day differs from ``day`` are dropped even if the
        reader returned them.
        """
        breaks = list(self._reader.get_breaks(day))
        if staff_id is not None:
            breaks.extend(self._reader.get_breaks(day, staff_id))

        applicable = [brk for brk in breaks if brk.applies_to(day)]
        return sorted(applicable, key=lambda brk: brk.interval.start)

    def _staff_schedules(self, day: DayOfWeek, appointments: List[Appointment]) -> List[StaffSchedule]:
        schedules = []
        for member, windows in sorted(self._reader.get_staff_working_hours(day).items()):
            if not windows:
                continue
            personal = [brk for brk in self._reader.get_breaks(day, member) if brk.applies_to(day)]
            schedules.append(
                StaffSchedule(
                    staff_id=member,
                    working_windows=tuple(_sorted_intervals(windows)),
                    breaks=tuple(sorted(personal, key=lambda brk: brk.interval.start)),
                    booked_intervals=tuple(_booked(appointments, lambda owner: owner == member)),
                )
            )
        return schedules


def _sorted_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    return sorted(intervals, key=lambda interval: interval.start)


def _booked(appointments: List[Appointment], owned: Callable[[Optional[str]], bool]) -> List[Interval]:
    return _sorted_intervals(appt.interval for appt in appointments if owned(appt.staff_id))
