"""
Domain layer - Pure business logic without external dependencies.
"""

from .days import DayOfWeek, parse_calendar_date, resolve_day_of_week
from .intervals import Interval, contains, overlaps
from .models import (
    ANY_STAFF,
    Appointment,
    AppointmentStatus,
    Break,
    ClosureInfo,
    Conflict,
    ConstraintSet,
    PartialClosure,
    Slot,
    StaffSchedule,
)
from .presence import is_on_break
from .slot_generator import SlotGenerator

__all__ = [
    "ANY_STAFF",
    "Appointment",
    "AppointmentStatus",
    "Break",
    "ClosureInfo",
    "Conflict",
    "ConstraintSet",
    "DayOfWeek",
    "Interval",
    "PartialClosure",
    "Slot",
    "SlotGenerator",
    "StaffSchedule",
    "contains",
    "is_on_break",
    "overlaps",
    "parse_calendar_date",
    "resolve_day_of_week",
]
