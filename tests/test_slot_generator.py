"""
Tests for slot generation.
"""

import pendulum
import pytest

from bookingslots.domain.days import DayOfWeek
from bookingslots.domain.exceptions import InvalidDurationError
from bookingslots.domain.intervals import Interval
from bookingslots.domain.models import Break, ConstraintSet, PartialClosure, StaffSchedule
from bookingslots.domain.slot_generator import (
    ALREADY_BOOKED,
    OUTSIDE_WORKING_HOURS,
    PAST_TIME,
    SlotGenerator,
    today_cutoff,
)

DATE = pendulum.date(2024, 3, 15)  # Friday
TZ = "America/New_York"
# A week before DATE, so nothing is in the past
EARLIER = pendulum.datetime(2024, 3, 8, 10, 0, tz=TZ)


def _constraints(**overrides) -> ConstraintSet:
    values = dict(
        date=DATE,
        day_of_week=DayOfWeek.FRIDAY,
        business_window=Interval.parse("09:00", "18:00"),
    )
    values.update(overrides)
    return ConstraintSet(**values)


def _generate(constraints, step=30, duration=30, now=EARLIER):
    return SlotGenerator().generate(
        constraints,
        slot_step_minutes=step,
        service_duration_minutes=duration,
        date=DATE,
        timezone=TZ,
        now=now,
    )


def _by_start(slots):
    return {slot.start_time[:5]: slot for slot in slots}


class TestSlotGenerator:
    """Tests for SlotGenerator.generate."""

    def test_lunch_break_scenario(self):
        """09:00-18:00 with a 12:00-13:00 break blocks exactly the two lunch slots."""
        constraints = _constraints(breaks=[Break(interval=Interval.parse("12:00", "13:00"), name="Lunch")])

        slots = _generate(constraints)
        by_start = _by_start(slots)

        assert len(slots) == 18
        assert slots[0].start_time == "09:00:00"
        assert slots[-1].start_time == "17:30:00"
        assert by_start["11:30"].available
        assert not by_start["12:00"].available
        assert by_start["12:00"].reason == "Break: Lunch"
        assert not by_start["12:30"].available
        assert by_start["13:00"].available
        assert [slot.available for slot in slots].count(False) == 2

    def test_unnamed_break_reason(self):
        """A break without a name reports a generic reason."""
        constraints = _constraints(breaks=[Break(interval=Interval.parse("12:00", "13:00"))])
        assert _by_start(_generate(constraints))["12:00"].reason == "Break time"

    def test_slots_strictly_increasing_and_fit_window(self):
        """Starts increase strictly and every slot ends within business hours."""
        slots = _generate(_constraints(), step=15, duration=45)
        starts = [slot.start for slot in slots]

        assert starts == sorted(set(starts))
        assert all(slot.end <= 18 * 60 for slot in slots)
        assert slots[-1].end_time == "18:00:00"

    def test_last_slot_when_duration_does_not_divide(self):
        """A candidate that would run past closing is not generated."""
        slots = _generate(_constraints(business_window=Interval.parse("09:00", "10:00")), step=30, duration=45)
        assert [slot.start_time for slot in slots] == ["09:00:00"]

    def test_duration_longer_than_window(self):
        """No candidate fits, so the list is empty."""
        slots = _generate(_constraints(business_window=Interval.parse("09:00", "09:30")), duration=60)
        assert slots == []

    def test_full_day_closure_takes_precedence(self):
        """A full-day closure yields no slots even with business hours."""
        constraints = _constraints(full_day_closed=True, closure_reason="Holiday")
        assert _generate(constraints) == []

    def test_no_business_hours(self):
        """A day without business hours yields no slots."""
        assert _generate(_constraints(business_window=None)) == []

    def test_booked_intervals(self):
        """Slots overlapping an appointment are marked as booked; adjacent ones are free."""
        constraints = _constraints(booked_intervals=[Interval.parse("10:00", "10:45")])
        by_start = _by_start(_generate(constraints))

        assert by_start["09:30"].available
        assert by_start["10:00"].reason == ALREADY_BOOKED
        assert by_start["10:30"].reason == ALREADY_BOOKED
        assert by_start["11:00"].available

    def test_working_windows(self):
        """With a staff constraint, slots must fit inside one working window."""
        constraints = _constraints(
            working_windows=[Interval.parse("09:00", "11:00"), Interval.parse("14:00", "16:00")]
        )
        slots = _generate(constraints, duration=60)
        available = [slot.start_time[:5] for slot in slots if slot.available]

        assert available == ["09:00", "09:30", "10:00", "14:00", "14:30", "15:00"]
        assert _by_start(slots)["10:30"].reason == OUTSIDE_WORKING_HOURS

    def test_partial_closure(self):
        """Partial closures block only the overlapping part of the day."""
        constraints = _constraints(
            partial_closures=[PartialClosure(interval=Interval.parse("15:00", "18:00"), reason="Staff meeting")]
        )
        by_start = _by_start(_generate(constraints))

        assert by_start["14:30"].available
        assert by_start["15:00"].reason == "Shop closed: Staff meeting"
        assert by_start["17:30"].reason == "Shop closed: Staff meeting"

    def test_partial_closure_without_reason(self):
        """An unexplained partial closure still has a message."""
        constraints = _constraints(partial_closures=[PartialClosure(interval=Interval.parse("09:00", "10:00"))])
        assert _by_start(_generate(constraints))["09:00"].reason == "Shop closed: Temporary closure"

    def test_reason_priority(self):
        """The first reason in priority order is reported."""
        constraints = _constraints(
            working_windows=[Interval.parse("13:00", "18:00")],
            breaks=[Break(interval=Interval.parse("12:00", "13:00"), name="Lunch")],
            booked_intervals=[Interval.parse("12:00", "12:30")],
        )
        assert _by_start(_generate(constraints))["12:00"].reason == OUTSIDE_WORKING_HOURS

        reasons = SlotGenerator.unavailable_reasons(Interval.parse("12:00", "12:30"), constraints)
        assert reasons == [OUTSIDE_WORKING_HOURS, "Break: Lunch", ALREADY_BOOKED]

    @pytest.mark.parametrize("step, duration", [(0, 30), (30, 0), (-15, 30), (30, -30)])
    def test_invalid_durations(self, step, duration):
        """Non-positive step or duration is an input error."""
        with pytest.raises(InvalidDurationError):
            _generate(_constraints(), step=step, duration=duration)


class TestPastTime:
    """Tests for masking slots that have already started."""

    def test_only_today_is_masked(self):
        """On today's date, slots at or before the current minute are past."""
        now = pendulum.datetime(2024, 3, 15, 11, 0, tz=TZ)
        by_start = _by_start(_generate(_constraints(), now=now))

        assert by_start["10:30"].reason == PAST_TIME
        assert by_start["11:00"].reason == PAST_TIME
        assert by_start["11:30"].available

    def test_future_date_not_masked(self):
        """Late in the day before, nothing is past."""
        now = pendulum.datetime(2024, 3, 14, 23, 59, tz=TZ)
        assert all(slot.available for slot in _generate(_constraints(), now=now))

    def test_today_is_decided_in_business_timezone(self):
        """02:00 UTC on the 16th is still the 15th in New York."""
        now = pendulum.datetime(2024, 3, 16, 2, 0, tz="UTC")  # 22:00 EDT on the 15th

        assert today_cutoff(DATE, TZ, now) == 22 * 60
        assert all(not slot.available for slot in _generate(_constraints(), now=now))

    def test_past_dates_are_not_masked(self):
        """Only today is masked; other dates keep their verdicts."""
        now = pendulum.datetime(2024, 3, 20, 12, 0, tz=TZ)
        assert today_cutoff(DATE, TZ, now) is None


class TestAnyStaff:
    """Availability when any one staff member may take the booking."""

    ALICE = StaffSchedule(
        staff_id="alice",
        working_windows=(Interval.parse("09:00", "13:00"),),
        breaks=(Break(interval=Interval.parse("11:00", "11:30"), name="Coffee", staff_id="alice"),),
        booked_intervals=(Interval.parse("09:00", "10:00"),),
    )
    BOB = StaffSchedule(staff_id="bob", working_windows=(Interval.parse("10:00", "12:00"),))

    def _constraints(self, *schedules, **overrides):
        return _constraints(
            working_windows=sorted(
                (window for schedule in schedules for window in schedule.working_windows),
                key=lambda window: window.start,
            ),
            staff_schedules=list(schedules),
            **overrides,
        )

    def test_free_when_any_member_is_free(self):
        """A slot is open while at least one member passes every check."""
        by_start = _by_start(_generate(self._constraints(self.ALICE, self.BOB)))

        assert by_start["09:00"].reason == ALREADY_BOOKED
        assert by_start["10:00"].available
        assert by_start["11:00"].available
        assert by_start["12:00"].available
        assert by_start["13:00"].reason == OUTSIDE_WORKING_HOURS

    def test_personal_break_reported_for_only_member(self):
        """A member's own break blocks the slot when nobody else works then."""
        by_start = _by_start(_generate(self._constraints(self.ALICE)))

        assert by_start["10:30"].available
        assert by_start["11:00"].reason == "Break: Coffee"

    def test_shop_constraints_apply_to_every_member(self):
        """Admin breaks and unassigned bookings block all members."""
        constraints = self._constraints(
            self.ALICE,
            self.BOB,
            breaks=[Break(interval=Interval.parse("10:00", "10:30"), name="Standup")],
            booked_intervals=[Interval.parse("11:30", "12:00")],
        )
        by_start = _by_start(_generate(constraints))

        assert by_start["10:00"].reason == "Break: Standup"
        assert by_start["11:30"].reason == ALREADY_BOOKED

    def test_nobody_scheduled(self):
        """With no working members every slot is outside working hours."""
        slots = _generate(self._constraints())
        assert {slot.reason for slot in slots} == {OUTSIDE_WORKING_HOURS}

    @pytest.mark.parametrize(
        "start, expected",
        [("09:00", None), ("10:00", "alice"), ("11:00", "bob"), ("12:00", "alice"), ("13:00", None)],
    )
    def test_assign_staff(self, start, expected):
        """The first free member by id takes the booking."""
        constraints = self._constraints(self.ALICE, self.BOB)
        assert SlotGenerator.assign_staff(Interval.from_start(start, 30), constraints) == expected
