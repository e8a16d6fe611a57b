"""
Tests for domain models.
"""

import re

import pendulum

from bookingslots.domain.days import DayOfWeek
from bookingslots.domain.intervals import Interval
from bookingslots.domain.models import (
    Appointment,
    AppointmentStatus,
    Break,
    ConstraintSet,
    Conflict,
    PartialClosure,
    Slot,
    generate_appointment_id,
)


class TestAppointment:
    """Tests for Appointment model."""

    def test_generated_ids(self):
        """Ids look like APT-XXXXXXXX and differ between appointments."""
        ids = {generate_appointment_id() for _ in range(50)}

        assert len(ids) == 50
        assert all(re.fullmatch(r"APT-[A-Z0-9]{8}", value) for value in ids)

    def test_blocking_statuses(self):
        """Cancelled and no-show appointments free their interval."""
        blocking = {status for status in AppointmentStatus if status.blocks_availability}

        assert blocking == {AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED}
        assert AppointmentStatus("no-show") is AppointmentStatus.NO_SHOW

    def test_format_display(self):
        """Display shows id, date, 12-hour times and staff."""
        appointment = Appointment(
            id="APT-ABCD1234",
            date=pendulum.date(2024, 3, 15),
            interval=Interval.parse("13:30", "14:15"),
        )

        assert appointment.format_display() == "APT-ABCD1234 | 2024-03-15 | 1:30 PM - 2:15 PM (unassigned)"


class TestBreak:
    """Tests for Break model."""

    def test_applies_to(self):
        """Breaks without a day apply to every day."""
        daily = Break(interval=Interval.parse("12:00", "13:00"))
        monday = Break(interval=Interval.parse("12:00", "13:00"), day_of_week=DayOfWeek.MONDAY)

        assert daily.applies_to(DayOfWeek.SUNDAY)
        assert monday.applies_to(DayOfWeek.MONDAY)
        assert not monday.applies_to(DayOfWeek.TUESDAY)

    def test_reason(self):
        """The reason names the break when it has a name."""
        assert Break(interval=Interval(720, 780), name="Lunch").reason == "Break: Lunch"
        assert Break(interval=Interval(720, 780)).reason == "Break time"
        assert PartialClosure(interval=Interval(720, 780)).message == "Shop closed: Temporary closure"


class TestConstraintSet:
    """Tests for ConstraintSet flags."""

    def test_closed_and_unscheduled(self):
        """Closed days and missing staff windows are detected."""
        base = dict(date=pendulum.date(2024, 3, 15), day_of_week=DayOfWeek.FRIDAY)

        assert ConstraintSet(**base).is_closed
        assert ConstraintSet(**base, business_window=Interval(540, 1080), full_day_closed=True).is_closed

        open_day = ConstraintSet(**base, business_window=Interval(540, 1080))
        assert not open_day.is_closed
        assert not open_day.staff_not_scheduled
        assert ConstraintSet(**base, business_window=Interval(540, 1080), working_windows=[]).staff_not_scheduled


class TestSlotAndConflict:
    """Tests for Slot and Conflict presentation."""

    def test_slot_times(self):
        """Slots expose storage and display times."""
        slot = Slot(interval=Interval.parse("09:00", "09:30"), available=True)

        assert (slot.start_time, slot.end_time) == ("09:00:00", "09:30:00")
        assert slot.format_display() == "9:00 AM - 9:30 AM | available"
        assert Slot(interval=Interval(540, 570), available=False, reason="Already booked").format_display().endswith(
            "| Already booked"
        )

    def test_conflict_message(self):
        """Conflicts join their reasons."""
        conflict = Conflict(reasons=("Already booked", "Break: Lunch"))
        assert conflict.message == "The selected time slot is no longer available: Already booked; Break: Lunch"
