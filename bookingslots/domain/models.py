"""
Domain models for schedule constraints, appointments and computed slots.
"""

import secrets
import string
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple

from pendulum import Date

from .days import DayOfWeek
from .intervals import Interval, format_12_hour, format_time_of_day

# Staff identifier meaning "whichever staff member is free"
ANY_STAFF = "any_staff"

_ID_ALPHABET = string.ascii_uppercase + string.digits


def generate_appointment_id() -> str:
    """Short, recognisable appointment id, e.g. ``APT-EF56GH78``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(8))
    return f"APT-{suffix}"


class AppointmentStatus(str, Enum):
    """Lifecycle states of an appointment."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"

    @property
    def blocks_availability(self) -> bool:
        """Cancelled and no-show appointments free their interval."""
        return self not in (AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW)


@dataclass(frozen=True)
class Break:
    """
    A recurring exclusion interval.

    ``staff_id`` is None for an admin (shop-wide) break. ``day_of_week`` is
    None when the break applies to whichever day it was looked up for.
    """
    interval: Interval
    name: str = ""
    day_of_week: Optional[DayOfWeek] = None
    staff_id: Optional[str] = None

    def applies_to(self, day: DayOfWeek) -> bool:
        """Check if the break recurs on ``day``."""
        return self.day_of_week is None or self.day_of_week == day

    @property
    def reason(self) -> str:
        return f"Break: {self.name}" if self.name else "Break time"


@dataclass(frozen=True)
class PartialClosure:
    """A one-off closure of part of a specific date."""
    interval: Interval
    reason: str = ""

    @property
    def message(self) -> str:
        return f"Shop closed: {self.reason or 'Temporary closure'}"


@dataclass(frozen=True)
class ClosureInfo:
    """Closures recorded for one calendar date."""
    full_day: bool = False
    reason: Optional[str] = None
    partial: Tuple[PartialClosure, ...] = ()


@dataclass
class Appointment:
    """A booked interval on a calendar date."""
    date: Date
    interval: Interval
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    staff_id: Optional[str] = None
    customer_name: Optional[str] = None
    notes: Optional[str] = None
    id: str = field(default_factory=generate_appointment_id)

    @property
    def blocks_availability(self) -> bool:
        return self.status.blocks_availability

    def format_display(self) -> str:
        """
        Format the appointment for display.
        Format: APT-XXXXXXXX | YYYY-MM-DD | 9:00 AM - 9:30 AM (staff)
        """
        staff = self.staff_id or "unassigned"
        return (
            f"{self.id} | {self.date.isoformat()} | "
            f"{format_12_hour(self.interval.start)} - {format_12_hour(self.interval.end)} ({staff})"
        )


@dataclass(frozen=True)
class StaffSchedule:
    """One staff member's own constraints for a day."""
    staff_id: str
    working_windows: Tuple[Interval, ...]
    breaks: Tuple[Break, ...] = ()
    booked_intervals: Tuple[Interval, ...] = ()


@dataclass
class ConstraintSet:
    """
    Every constraint applicable to one date (and optionally one staff member),
    already filtered to that date and its day of week.

    ``working_windows`` is None when no staff constraint applies. An empty
    list means a staff member was requested but is not scheduled that day.

    For an any-staff request ``working_windows`` is the union of every
    schedule, ``breaks`` and ``booked_intervals`` hold only what blocks all
    staff (admin breaks, unassigned appointments), and ``staff_schedules``
    carries each working staff member's own constraints.
    """
    date: Date
    day_of_week: DayOfWeek
    business_window: Optional[Interval] = None
    full_day_closed: bool = False
    closure_reason: Optional[str] = None
    partial_closures: List[PartialClosure] = field(default_factory=list)
    working_windows: Optional[List[Interval]] = None
    breaks: List[Break] = field(default_factory=list)
    booked_intervals: List[Interval] = field(default_factory=list)
    staff_schedules: Optional[List[StaffSchedule]] = None

    @property
    def is_closed(self) -> bool:
        """Closed all day, by closure or by having no business hours."""
        return self.full_day_closed or self.business_window is None

    @property
    def staff_not_scheduled(self) -> bool:
        """A staff constraint applies but has no working window."""
        return self.working_windows is not None and not self.working_windows

    def for_staff(self, schedule: StaffSchedule) -> "ConstraintSet":
        """The constraints of this day as seen by one staff member."""
        return replace(
            self,
            working_windows=list(schedule.working_windows),
            breaks=sorted([*self.breaks, *schedule.breaks], key=lambda brk: brk.interval.start),
            booked_intervals=sorted(
                [*self.booked_intervals, *schedule.booked_intervals], key=lambda interval: interval.start
            ),
            staff_schedules=None,
        )


@dataclass(frozen=True)
class Slot:
    """
    A computed candidate booking interval with its availability verdict.
    Never persisted.
    """
    interval: Interval
    available: bool
    reason: Optional[str] = None

    @property
    def start(self) -> int:
        return self.interval.start

    @property
    def end(self) -> int:
        return self.interval.end

    @property
    def start_time(self) -> str:
        return format_time_of_day(self.interval.start)

    @property
    def end_time(self) -> str:
        return format_time_of_day(self.interval.end)

    @property
    def display_time(self) -> str:
        return format_12_hour(self.interval.start)

    @property
    def display_end_time(self) -> str:
        return format_12_hour(self.interval.end)

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: 9:00 AM - 9:30 AM | available  /  ... | Already booked
        """
        span = f"{self.display_time} - {self.display_end_time}"
        verdict = "available" if self.available else (self.reason or "unavailable")
        return f"{span} | {verdict}"


@dataclass(frozen=True)
class Conflict:
    """
    Booking-time outcome: the interval cannot be booked (any more).

    This is a result value, not an error; clients re-fetch slots and retry.
    """
    reasons: Tuple[str, ...]

    @property
    def message(self) -> str:
        return "The selected time slot is no longer available: " + "; ".join(self.reasons)
