"""
In-memory schedule store for tests, demos and config-only deployments.
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from pendulum import Date

from ..config import AppConfig
from ..domain.days import DateInput, DayOfWeek, parse_calendar_date
from ..domain.intervals import Interval
from ..domain.models import ANY_STAFF, Appointment, Break, ClosureInfo, PartialClosure

logger = logging.getLogger(__name__)


class InMemoryScheduleStore:
    """
    Schedule store backed by plain dicts and lists.

    A single re-entrant lock guards all data. ``atomic()`` holds it for the
    whole block, which makes check-then-insert bookings serial. ``snapshot()``
    holds it for a block of reads; other reads take it per call.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._business_hours: Dict[DayOfWeek, Interval] = {}
        self._working_hours: Dict[Tuple[str, DayOfWeek], List[Interval]] = defaultdict(list)
        self._breaks: List[Break] = []
        self._full_day_closures: Dict[Date, str] = {}
        self._partial_closures: Dict[Date, List[PartialClosure]] = defaultdict(list)
        self._appointments: List[Appointment] = []

    @classmethod
    def from_config(cls, config: AppConfig) -> "InMemoryScheduleStore":
        """Build a store holding the schedule described by ``config``."""
        store = cls()

        for day in DayOfWeek:
            window = config.business_window_for(day)
            if window is not None:
                store.set_business_hours(day, window)

        for break_config in config.breaks:
            store.add_break(break_config.to_break())

        for member in config.staff:
            for day in DayOfWeek:
                for window in member.windows_for(day):
                    store.add_working_hours(member.id, day, window)
            for break_config in member.breaks:
                store.add_break(break_config.to_break(staff_id=member.id))

        for closure in config.closures:
            if closure.is_full_day:
                store.add_closure(closure.date, closure.reason)
            else:
                store.add_closure(closure.date, closure.reason, closure.to_partial().interval)

        logger.debug(
            "Loaded in-memory schedule: %d business days, %d staff, %d breaks, %d closures",
            len(store._business_hours),
            len(config.staff),
            len(store._breaks),
            len(config.closures),
        )
        return store

    # -- setup -------------------------------------------------------------

    def set_business_hours(self, day: DayOfWeek, window: Optional[Interval]) -> None:
        with self._lock:
            if window is None:
                self._business_hours.pop(day, None)
            else:
                self._business_hours[day] = window

    def add_working_hours(self, staff_id: str, day: DayOfWeek, window: Interval) -> None:
        with self._lock:
            self._working_hours[(staff_id, DayOfWeek.parse(day))].append(window)

    def add_break(self, brk: Break) -> None:
        with self._lock:
            self._breaks.append(brk)

    def add_closure(self, date: DateInput, reason: str = "", window: Optional[Interval] = None) -> None:
        """Record a full-day closure, or a partial one when ``window`` is given."""
        calendar_date = parse_calendar_date(date)
        with self._lock:
            if window is None:
                self._full_day_closures[calendar_date] = reason
            else:
                self._partial_closures[calendar_date].append(PartialClosure(interval=window, reason=reason))

    def add_appointment(self, appointment: Appointment) -> Appointment:
        """Store an appointment as-is, without availability checks."""
        with self._lock:
            self._appointments.append(appointment)
        return appointment

    # -- reads ---------------------------------------------------------------

    def get_business_hours(self, day: DayOfWeek) -> Optional[Interval]:
        with self._lock:
            return self._business_hours.get(day)

    def get_working_hours(self, staff_id: str, day: DayOfWeek) -> List[Interval]:
        with self._lock:
            if staff_id == ANY_STAFF:
                return [
                    window
                    for (_, window_day), windows in self._working_hours.items()
                    if window_day == day
                    for window in windows
                ]
            return list(self._working_hours.get((staff_id, day), []))

    def get_staff_working_hours(self, day: DayOfWeek) -> Dict[str, List[Interval]]:
        with self._lock:
            return {
                staff_id: list(windows)
                for (staff_id, window_day), windows in self._working_hours.items()
                if window_day == day and windows
            }

    def get_breaks(self, day: DayOfWeek, staff_id: Optional[str] = None) -> List[Break]:
        """
        Admin breaks (``staff_id`` None) belong to the day's business hours,
        so none are returned for a day the shop is closed.
        """
        with self._lock:
            if staff_id is None and day not in self._business_hours:
                return []
            return [
                brk for brk in self._breaks
                if brk.staff_id == staff_id and brk.applies_to(day)
            ]

    def get_closures(self, date: Date) -> ClosureInfo:
        calendar_date = parse_calendar_date(date)
        with self._lock:
            full_day = calendar_date in self._full_day_closures
            return ClosureInfo(
                full_day=full_day,
                reason=self._full_day_closures.get(calendar_date) if full_day else None,
                partial=tuple(self._partial_closures.get(calendar_date, [])),
            )

    def get_appointments(self, date: Date, staff_id: Optional[str] = None) -> List[Appointment]:
        """Blocking appointments on ``date``; every staff member's when ``staff_id`` is None."""
        calendar_date = parse_calendar_date(date)
        with self._lock:
            return [
                appt for appt in self._appointments
                if appt.date == calendar_date
                and appt.blocks_availability
                and (staff_id is None or appt.staff_id == staff_id)
            ]

    @contextmanager
    def snapshot(self) -> Iterator["InMemoryScheduleStore"]:
        """Hold the store lock so a series of reads sees one state."""
        with self._lock:
            yield self

    # -- writes --------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator["InMemoryTransaction"]:
        """Hold the store lock for the block; undo inserts if it raises."""
        with self._lock:
            transaction = InMemoryTransaction(self)
            try:
                yield transaction
            except BaseException:
                transaction.rollback()
                raise


class InMemoryTransaction:
    """Reads and inserts against an ``InMemoryScheduleStore`` under its lock."""

    def __init__(self, store: InMemoryScheduleStore) -> None:
        self._store = store
        self._inserted: List[Appointment] = []

    def get_business_hours(self, day: DayOfWeek) -> Optional[Interval]:
        return self._store.get_business_hours(day)

    def get_working_hours(self, staff_id: str, day: DayOfWeek) -> List[Interval]:
        return self._store.get_working_hours(staff_id, day)

    def get_staff_working_hours(self, day: DayOfWeek) -> Dict[str, List[Interval]]:
        return self._store.get_staff_working_hours(day)

    def get_breaks(self, day: DayOfWeek, staff_id: Optional[str] = None) -> List[Break]:
        return self._store.get_breaks(day, staff_id)

    def get_closures(self, date: Date) -> ClosureInfo:
        return self._store.get_closures(date)

    def get_appointments(self, date: Date, staff_id: Optional[str] = None) -> List[Appointment]:
        return self._store.get_appointments(date, staff_id)

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        self._store.add_appointment(appointment)
        self._inserted.append(appointment)
        return appointment

    def rollback(self) -> None:
        for appointment in self._inserted:
            self._store._appointments.remove(appointment)
        self._inserted.clear()
