"""Pydantic models for data validation and serialization."""

from .appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentDetails,
    AppointmentStatus,
    UPDATABLE_STATUSES,
)
from .payment import Payment, PaymentResult
from .service import Service

__all__ = [
    "Appointment",
    "AppointmentCreate",
    "AppointmentDetails",
    "AppointmentStatus",
    "UPDATABLE_STATUSES",
    "Payment",
    "PaymentResult",
    "Service",
]
