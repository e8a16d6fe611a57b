"""
Domain-specific exception hierarchy for the booking slots application.
"""


class BookingSlotsError(Exception):
    """Base class for all application-level errors."""


class InvalidInputError(BookingSlotsError, ValueError):
    """Raised when caller input is malformed. Never coerced silently."""


class InvalidDateError(InvalidInputError):
    """Raised when a calendar date cannot be parsed."""


class InvalidTimezoneError(InvalidInputError):
    """Raised when a timezone identifier is unknown."""


class InvalidDurationError(InvalidInputError):
    """Raised for non-positive slot steps or service durations."""


class InvalidTimeError(InvalidInputError):
    """Raised when a time-of-day value cannot be parsed."""


class InvalidIntervalError(InvalidInputError):
    """Raised when an interval does not start before it ends."""


class InvalidDayError(InvalidInputError):
    """Raised when a stored or supplied day-of-week value is not recognised."""


class StorageError(BookingSlotsError):
    """Raised when the appointment store fails (connection, lock timeout, ...)."""
