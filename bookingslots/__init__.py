"""
bookingslots - appointment slot availability and conflict-free booking.
"""

__version__ = "0.1.0"

from .domain.exceptions import BookingSlotsError
from .services.availability import AvailabilityService, SlotListing

__all__ = ["__version__", "AvailabilityService", "BookingSlotsError", "SlotListing"]
