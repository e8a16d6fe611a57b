"""
Service layer helpers that orchestrate store adapters and domain logic.
"""

from .availability import AvailabilityService, ScheduleStoreProtocol, SlotListing, total_service_duration
from .booking_guard import AppointmentWriter, BookingGuard, BookingResult, ScheduleTransaction
from .constraints import ConstraintAggregator, ScheduleReader, SnapshotSource

__all__ = [
    "AppointmentWriter",
    "AvailabilityService",
    "BookingGuard",
    "BookingResult",
    "ConstraintAggregator",
    "ScheduleReader",
    "ScheduleStoreProtocol",
    "ScheduleTransaction",
    "SlotListing",
    "SnapshotSource",
    "total_service_duration",
]
