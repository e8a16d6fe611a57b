"""
Transactional booking.

Slot listing is read-only and not isolated from concurrent bookings, so a
slot that looked free may be taken before the client books it. The guard
re-reads every constraint inside the writer's transaction and only inserts
when the interval is still free; two simultaneous bookings of the same
interval therefore yield one appointment and one ``Conflict``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import ContextManager, List, Optional, Protocol, Union

from ..domain.days import DateInput, parse_calendar_date
from ..domain.intervals import Interval, contains
from ..domain.models import ANY_STAFF, Appointment, Conflict, ConstraintSet
from ..domain.slot_generator import SlotGenerator, today_cutoff
from .constraints import ConstraintAggregator, ScheduleReader

logger = logging.getLogger(__name__)

BookingResult = Union[Appointment, Conflict]


class ScheduleTransaction(ScheduleReader, Protocol):
    """Reads and the single write available inside one atomic transaction."""

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        """Stage a new appointment; it is committed when the transaction ends."""


class AppointmentWriter(Protocol):
    """A store able to run a block of reads and one insert atomically."""

    def atomic(self) -> ContextManager[ScheduleTransaction]:
        """
        Open a transaction. Leaving the block normally commits; an exception
        rolls back. Infrastructure failures raise ``StorageError``.
        """


class BookingGuard:
    """
    Re-validates a candidate interval and creates the appointment atomically.

    An any-staff booking is stored under the first staff member free for the
    whole interval, so later bookings for that member see it.

    There is no retry loop: a ``StorageError`` propagates to the caller so
    double submissions are never masked.
    """

    def __init__(self, writer: AppointmentWriter, slot_generator: Optional[SlotGenerator] = None) -> None:
        self._writer = writer
        self._slot_generator = slot_generator or SlotGenerator()

    def try_book(
        self,
        candidate: Interval,
        date: DateInput,
        staff_id: Optional[str] = None,
        *,
        timezone: str,
        now: datetime,
        customer_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BookingResult:
        """
        Book ``candidate`` on ``date`` if it is still free.

        Returns:
            The stored Appointment, or a Conflict listing why it cannot be booked

        Raises:
            InvalidInputError: For a malformed date, timezone or instant
            StorageError: If the store fails
        """
        calendar_date = parse_calendar_date(date)
        # Validates timezone and instant before any transaction is opened
        past_cutoff = today_cutoff(calendar_date, timezone, now)

        with self._writer.atomic() as transaction:
            constraints = ConstraintAggregator(transaction).aggregate(calendar_date, timezone, staff_id)
            reasons = self.conflict_reasons(candidate, constraints, past_cutoff)

            if reasons:
                logger.warning(
                    "Booking conflict for %s %s (staff=%s): %s",
                    calendar_date,
                    candidate,
                    staff_id,
                    "; ".join(reasons),
                )
                return Conflict(reasons=tuple(reasons))

            assigned = staff_id
            if staff_id == ANY_STAFF:
                assigned = self._slot_generator.assign_staff(candidate, constraints, past_cutoff)

            appointment = transaction.insert_appointment(
                Appointment(
                    date=calendar_date,
                    interval=candidate,
                    staff_id=assigned,
                    customer_name=customer_name,
                    notes=notes,
                )
            )

        logger.info("Booked %s", appointment.format_display())
        return appointment

    def conflict_reasons(
        self,
        candidate: Interval,
        constraints: ConstraintSet,
        past_cutoff: Optional[int] = None,
    ) -> List[str]:
        """Everything that prevents booking ``candidate`` under ``constraints``."""
        if constraints.full_day_closed:
            return [f"The shop is closed on this day: {constraints.closure_reason or 'Shop closure'}"]

        if constraints.business_window is None:
            return ["The shop is not open on this day"]

        reasons: List[str] = []
        if not contains(constraints.business_window, candidate):
            reasons.append("The shop is not open at the requested time")

        reasons.extend(self._slot_generator.unavailable_reasons(candidate, constraints, past_cutoff))
        return reasons
