"""
Tests for the AvailabilityService orchestration layer.
"""

from contextlib import contextmanager

import pendulum
import pytest

from bookingslots.adapters.memory_store import InMemoryScheduleStore
from bookingslots.domain.days import DayOfWeek
from bookingslots.domain.exceptions import InvalidDateError, InvalidDurationError, InvalidTimezoneError
from bookingslots.domain.intervals import Interval
from bookingslots.domain.models import ANY_STAFF, Appointment, Break, Conflict
from bookingslots.services.availability import AvailabilityService, total_service_duration

TZ = "America/Edmonton"
SATURDAY = "2024-08-31"


def _store(store=None) -> InMemoryScheduleStore:
    store = store or InMemoryScheduleStore()
    store.set_business_hours(DayOfWeek.SATURDAY, Interval.parse("10:00", "16:00"))
    store.set_business_hours(DayOfWeek.MONDAY, Interval.parse("09:00", "18:00"))
    store.add_working_hours("alice", DayOfWeek.SATURDAY, Interval.parse("10:00", "14:00"))
    store.add_break(Break(interval=Interval.parse("12:00", "13:00"), name="Lunch"))
    store.add_break(
        Break(interval=Interval.parse("11:00", "11:15"), name="Coffee", day_of_week=DayOfWeek.SATURDAY, staff_id="alice")
    )
    return store


class SnapshotCountingStore(InMemoryScheduleStore):
    """Counts snapshots and notes closure reads made outside one."""

    def __init__(self):
        super().__init__()
        self.snapshots = 0
        self.unguarded_reads = 0
        self._in_snapshot = False

    @contextmanager
    def snapshot(self):
        self.snapshots += 1
        with super().snapshot() as reader:
            self._in_snapshot = True
            try:
                yield reader
            finally:
                self._in_snapshot = False

    def get_closures(self, date):
        if not self._in_snapshot:
            self.unguarded_reads += 1
        return super().get_closures(date)


def _service(store=None, now=None) -> AvailabilityService:
    fixed = now or pendulum.datetime(2024, 8, 1, 9, 0, tz=TZ)
    return AvailabilityService(store or _store(), clock=lambda: fixed)


class TestGetAvailableSlots:
    """Tests for AvailabilityService.get_available_slots."""

    def test_lists_slots_for_open_day(self):
        """An open day lists every candidate with its verdict."""
        listing = _service().get_available_slots(SATURDAY, TZ, service_duration_minutes=60, slot_step_minutes=60)

        assert listing.day_of_week == DayOfWeek.SATURDAY
        assert [slot.start_time[:5] for slot in listing.slots] == ["10:00", "11:00", "12:00", "13:00", "14:00", "15:00"]
        assert [slot.start_time[:5] for slot in listing.available_slots] == ["10:00", "11:00", "13:00", "14:00", "15:00"]
        assert listing.message is None

    def test_staff_listing(self):
        """A staff listing applies the staff member's windows and breaks."""
        listing = _service().get_available_slots(
            SATURDAY, TZ, service_duration_minutes=30, slot_step_minutes=30, staff_id="alice"
        )

        available = [slot.start_time[:5] for slot in listing.available_slots]
        assert available == ["10:00", "10:30", "11:30", "13:00", "13:30"]

    def test_full_day_closure_message(self):
        """A closed date yields no slots and the closure reason."""
        store = _store()
        store.add_closure(SATURDAY, "Staff training")

        listing = _service(store).get_available_slots(SATURDAY, TZ, 30, 30)

        assert listing.slots == []
        assert listing.message == "The shop is closed on this day: Staff training"

    def test_closure_without_reason(self):
        """A closure without a reason still explains itself."""
        store = _store()
        store.add_closure(SATURDAY)

        listing = _service(store).get_available_slots(SATURDAY, TZ, 30, 30)

        assert listing.message == "The shop is closed on this day: Shop closure"

    def test_not_open_message(self):
        """A day without business hours reports the shop as closed."""
        listing = _service().get_available_slots("2024-09-01", TZ, 30, 30)

        assert listing.slots == []
        assert listing.message == "The shop is not open on this day"

    def test_staff_not_working_message(self):
        """A staff member without hours that day gets a dedicated message."""
        listing = _service().get_available_slots("2024-09-02", TZ, 30, 30, staff_id="alice")

        assert listing.slots == []
        assert listing.message == (
            "alice is not available on monday. Please choose a different day or staff member."
        )

        any_listing = _service().get_available_slots("2024-09-02", TZ, 30, 30, staff_id=ANY_STAFF)
        assert any_listing.message == "No staff member is working on monday."

    def test_fully_booked_message(self):
        """A day with no free slot says so."""
        store = _store()
        store.add_appointment(
            Appointment(date=pendulum.date(2024, 8, 31), interval=Interval.parse("10:00", "16:00"))
        )

        listing = _service(store).get_available_slots(SATURDAY, TZ, 30, 30)

        assert listing.slots
        assert listing.available_slots == []
        assert listing.message == "No available time slots on the selected date."

    def test_uses_injected_clock(self):
        """'Now' comes from the clock, in the business timezone."""
        # 19:30 UTC is 13:30 in Edmonton on the same date
        now = pendulum.datetime(2024, 8, 31, 19, 30, tz="UTC")
        listing = _service(now=now).get_available_slots(SATURDAY, TZ, 60, 60)

        assert [slot.start_time[:5] for slot in listing.available_slots] == ["14:00", "15:00"]

    def test_fresh_reads_each_call(self):
        """A booking made between two calls is reflected in the second."""
        store = _store()
        service = _service(store)

        before = service.get_available_slots(SATURDAY, TZ, 60, 60)
        service.book_slot(SATURDAY, "14:00", 60, TZ)
        after = service.get_available_slots(SATURDAY, TZ, 60, 60)

        assert len(after.available_slots) == len(before.available_slots) - 1

    def test_invalid_input(self):
        """Bad durations and timezones raise typed errors."""
        with pytest.raises(InvalidDurationError):
            _service().get_available_slots(SATURDAY, TZ, 0, 30)
        with pytest.raises(InvalidTimezoneError):
            _service().get_available_slots(SATURDAY, "Nowhere/Special", 30, 30)

    def test_naive_now_rejected_on_closed_day(self):
        """A naive "now" is an error even when the day has no slots to mask."""
        naive = pendulum.naive(2024, 9, 1, 9, 0)

        with pytest.raises(InvalidDateError):
            _service().get_available_slots("2024-09-01", TZ, 30, 30, now=naive)

    def test_constraints_read_from_one_snapshot(self):
        """Every constraint of a listing is read inside a single snapshot."""
        store = _store(SnapshotCountingStore())

        _service(store).get_available_slots(SATURDAY, TZ, 30, 30, staff_id=ANY_STAFF)

        assert store.snapshots == 1
        assert store.unguarded_reads == 0

    def test_any_staff_listing_applies_personal_breaks(self):
        """An ANY_STAFF listing honours the working member's own breaks."""
        listing = _service().get_available_slots(SATURDAY, TZ, 30, 30, staff_id=ANY_STAFF)
        slots = {slot.start_time[:5]: slot for slot in listing.slots}

        assert slots["10:30"].available
        assert not slots["11:00"].available
        assert slots["11:00"].reason == "Break: Coffee"
        assert not slots["14:00"].available
        assert slots["14:00"].reason == "Outside staff working hours"

    def test_any_staff_listing_with_colleague_free(self):
        """A slot one member is on break for stays open when another is free."""
        store = _store()
        store.add_working_hours("bob", DayOfWeek.SATURDAY, Interval.parse("10:00", "16:00"))

        listing = _service(store).get_available_slots(SATURDAY, TZ, 30, 30, staff_id=ANY_STAFF)
        available = [slot.start_time[:5] for slot in listing.available_slots]

        assert "11:00" in available
        assert "14:00" in available
        assert "12:00" not in available


class TestBookSlot:
    """Tests for AvailabilityService.book_slot."""

    def test_book_then_conflict(self):
        """The same slot can only be booked once."""
        service = _service()

        first = service.book_slot(SATURDAY, "13:00", 30, TZ, staff_id="alice", customer_name="Dana")
        second = service.book_slot(SATURDAY, "13:15", 30, TZ, staff_id="alice")

        assert isinstance(first, Appointment)
        assert first.customer_name == "Dana"
        assert first.format_display().endswith("| 2024-08-31 | 1:00 PM - 1:30 PM (alice)")
        assert isinstance(second, Conflict)

    def test_any_staff_booking_during_personal_break(self):
        """ANY_STAFF cannot book a member who is on a personal break."""
        result = _service().book_slot(SATURDAY, "11:00", 30, TZ, staff_id=ANY_STAFF)

        assert isinstance(result, Conflict)
        assert result.reasons == ("Break: Coffee",)

    def test_multi_service_duration(self):
        """Several services are booked as one interval of their total length."""
        duration = total_service_duration([30, 15, 45])
        result = _service().book_slot(SATURDAY, "13:00", duration, TZ)

        assert duration == 90
        assert result.interval == Interval.parse("13:00", "14:30")

    def test_total_service_duration_validation(self):
        """Empty or non-positive durations are rejected."""
        with pytest.raises(InvalidDurationError):
            total_service_duration([])
        with pytest.raises(InvalidDurationError):
            total_service_duration([30, 0])


class TestStaffOnBreak:
    """Tests for the derived on-break flag."""

    @pytest.mark.parametrize(
        "hour, minute, expected",
        [(11, 0, True), (11, 14, True), (11, 15, False), (12, 30, True), (13, 0, False), (10, 59, False)],
    )
    def test_on_break(self, hour, minute, expected):
        """Personal and shop-wide breaks both count; end bounds are exclusive."""
        now = pendulum.datetime(2024, 8, 31, hour, minute, tz=TZ)
        assert _service().staff_on_break("alice", TZ, now=now) is expected

    def test_break_on_other_day(self):
        """A personal break recurring on another weekday does not apply."""
        now = pendulum.datetime(2024, 9, 2, 11, 5, tz=TZ)  # Monday
        assert _service().staff_on_break("alice", TZ, now=now) is False
