"""
Application services for listing and booking slots.

The service coordinates constraint retrieval through a store adapter and
delegates the availability calculation to the domain-level ``SlotGenerator``
and the write path to ``BookingGuard``. Closed days and unscheduled staff are
not errors: they come back as an empty slot list with a message.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Protocol

import pendulum
from pendulum import Date

from ..domain.days import DateInput, DayOfWeek, local_today, parse_calendar_date, to_business_time
from ..domain.exceptions import InvalidDurationError
from ..domain.intervals import Interval, TimeInput
from ..domain.models import ANY_STAFF, ConstraintSet, Slot
from ..domain.presence import is_on_break
from ..domain.slot_generator import SlotGenerator, validate_positive_minutes
from .booking_guard import AppointmentWriter, BookingGuard, BookingResult
from .constraints import ConstraintAggregator, ScheduleReader, SnapshotSource

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class ScheduleStoreProtocol(ScheduleReader, SnapshotSource, AppointmentWriter, Protocol):
    """Protocol describing the store behaviour needed by the service."""


@dataclass
class SlotListing:
    """Slots for one date plus the context a caller needs to present them."""
    date: Date
    day_of_week: DayOfWeek
    timezone: str
    slot_step_minutes: int
    service_duration_minutes: int
    slots: List[Slot] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def available_slots(self) -> List[Slot]:
        return [slot for slot in self.slots if slot.available]


def total_service_duration(durations: Iterable[int]) -> int:
    """
    Total duration of a multi-service booking.

    Raises:
        InvalidDurationError: If no duration is given or any is not positive
    """
    values = list(durations)
    if not values:
        raise InvalidDurationError("At least one service duration is required")

    for value in values:
        validate_positive_minutes(value, "service duration")

    return sum(values)


class AvailabilityService:
    """
    Orchestrates constraint retrieval, slot generation and booking.

    The clock is injected so "now" is an explicit input all the way down; the
    domain layer never reads it.
    """

    def __init__(
        self,
        store: ScheduleStoreProtocol,
        clock: Clock = pendulum.now,
        slot_generator: Optional[SlotGenerator] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._slot_generator = slot_generator or SlotGenerator()
        self._guard = BookingGuard(store, self._slot_generator)

    def get_available_slots(
        self,
        date: DateInput,
        timezone: str,
        service_duration_minutes: int,
        slot_step_minutes: int,
        staff_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SlotListing:
        """
        Compute the slot list for a date, optionally for one staff member.

        Every call reads fresh constraints from one store snapshot; nothing is
        cached between calls.
        """
        validate_positive_minutes(service_duration_minutes, "service_duration_minutes")
        validate_positive_minutes(slot_step_minutes, "slot_step_minutes")
        calendar_date = parse_calendar_date(date)
        current = now if now is not None else self._clock()
        # Rejects a naive or malformed instant even on closed days
        to_business_time(current, timezone)

        constraints = self._aggregate(calendar_date, timezone, staff_id)

        listing = SlotListing(
            date=calendar_date,
            day_of_week=constraints.day_of_week,
            timezone=timezone,
            slot_step_minutes=slot_step_minutes,
            service_duration_minutes=service_duration_minutes,
        )

        if constraints.full_day_closed:
            listing.message = f"The shop is closed on this day: {constraints.closure_reason or 'Shop closure'}"
            return listing

        if constraints.business_window is None:
            listing.message = "The shop is not open on this day"
            return listing

        if constraints.staff_not_scheduled:
            listing.message = self._not_working_message(staff_id, constraints.day_of_week)
            return listing

        listing.slots = self._slot_generator.generate(
            constraints,
            slot_step_minutes=slot_step_minutes,
            service_duration_minutes=service_duration_minutes,
            date=calendar_date,
            timezone=timezone,
            now=current,
        )

        if not listing.available_slots:
            listing.message = "No available time slots on the selected date."

        return listing

    def book_slot(
        self,
        date: DateInput,
        start_time: TimeInput,
        service_duration_minutes: int,
        timezone: str,
        staff_id: Optional[str] = None,
        customer_name: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        """Book ``[start_time, start_time + duration)`` through the booking guard."""
        validate_positive_minutes(service_duration_minutes, "service_duration_minutes")
        candidate = Interval.from_start(start_time, service_duration_minutes)
        logger.debug("Booking request for %s %s (staff=%s)", date, candidate, staff_id)

        return self._guard.try_book(
            candidate,
            date,
            staff_id,
            timezone=timezone,
            now=now if now is not None else self._clock(),
            customer_name=customer_name,
            notes=notes,
        )

    def staff_on_break(
        self,
        staff_id: str,
        timezone: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Whether a staff member is on a personal or shop-wide break right now."""
        current = now if now is not None else self._clock()
        today = local_today(current, timezone)
        constraints = self._aggregate(today, timezone, staff_id)
        return is_on_break(constraints.breaks, current, timezone)

    def _aggregate(self, date: Date, timezone: str, staff_id: Optional[str]) -> ConstraintSet:
        with self._store.snapshot() as reader:
            return ConstraintAggregator(reader).aggregate(date, timezone, staff_id)

    @staticmethod
    def _not_working_message(staff_id: Optional[str], day: DayOfWeek) -> str:
        if staff_id == ANY_STAFF:
            return f"No staff member is working on {day.label}."
        return (
            f"{staff_id} is not available on {day.label}. "
            "Please choose a different day or staff member."
        )
