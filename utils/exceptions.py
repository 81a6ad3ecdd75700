"""
Custom exception classes for the booking workflow.
Client-caused errors are kept distinct so callers can render actionable messages.
"""


class BookingError(Exception):
    """Base exception for booking workflow errors."""

    pass


class InvalidInputError(BookingError):
    """Raised for malformed or past date/time values and missing fields."""

    pass


class SlotUnavailableError(BookingError):
    """Raised when the requested slot is already held by another appointment."""

    pass


class InvalidStatusError(BookingError):
    """Raised when an unrecognized appointment status is requested."""

    pass


class NotFoundError(BookingError):
    """Raised when a referenced appointment, pet, service or payment does not exist."""

    pass


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class StorageError(DatabaseError):
    """Raised when a query or transaction against the store fails."""

    pass


class PaymentError(Exception):
    """Base exception for payment operations."""

    pass


class PaymentIntentError(PaymentError):
    """Raised when payment intent creation/retrieval fails."""

    pass


class RefundError(PaymentError):
    """Raised when a refund cannot be processed."""

    pass


class WebhookVerificationError(Exception):
    """Raised when webhook signature verification fails."""

    pass


class ValidationError(Exception):
    """Raised when webhook payload validation fails."""

    pass
