from __future__ import annotations


class BookingError(Exception):
    """Base class for every failure the booking engine reports to callers."""

    status_code = 500
    kind = "booking_error"
    default_message = "Booking operation failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidInterval(BookingError, ValueError):
    status_code = 400
    kind = "invalid_interval"
    default_message = "Booking start time must be earlier than end time."


class ResourceNotFound(BookingError, LookupError):
    status_code = 404
    kind = "resource_not_found"
    default_message = "Resource not found."


class BookingNotFound(BookingError, LookupError):
    status_code = 404
    kind = "booking_not_found"
    default_message = "Booking not found."


class LedgerEntryMissing(BookingError, LookupError):
    status_code = 404
    kind = "ledger_entry_missing"
    default_message = "Overall booking entry not found."


class SlotAlreadyBooked(BookingError):
    status_code = 409
    kind = "slot_already_booked"
    default_message = "That time slot is already booked."


class StorageFailure(BookingError, RuntimeError):
    status_code = 500
    kind = "storage_failure"
    default_message = "Failed to persist booking."


class ConstraintViolation(RuntimeError):
    """Raised by a store when its exclusion constraint rejects a row."""

    def __init__(self, message: str, conflicting_id: str | None = None) -> None:
        super().__init__(message)
        self.conflicting_id = conflicting_id
