"""Appointment booking workflow: slots, booking and status changes."""

from .service import BookingService
from .slots import SlotCalculator
from .status import StatusManager

__all__ = ["BookingService", "SlotCalculator", "StatusManager"]
