"""Appointment status changes."""

from typing import Union

from models.appointment import UPDATABLE_STATUSES, AppointmentStatus
from utils.exceptions import InvalidInputError, InvalidStatusError
from utils.logging_config import setup_logging
from utils.validation import validate_positive_id

logger = setup_logging(name=__name__, log_file="booking.log", log_dir="logs")


class StatusManager:
    """
    Sets appointment status to pending, confirmed, cancelled or completed.

    Any allowed value may follow any other; there is no transition graph.
    ``paid`` is reserved for the payment processor.
    """

    def __init__(self, db):
        self.db = db

    async def update_status(
        self, appointment_id: int, new_status: Union[str, AppointmentStatus]
    ) -> bool:
        """
        Change an appointment's status.

        Returns:
            True if a row changed, False if no appointment has this ID

        Raises:
            InvalidStatusError: Status is not one of the allowed values
            InvalidInputError: Appointment ID is not an integer
        """
        value = new_status.value if isinstance(new_status, AppointmentStatus) else new_status
        if not isinstance(value, str) or value not in UPDATABLE_STATUSES:
            raise InvalidStatusError(f"Invalid status: {value}")

        if isinstance(appointment_id, bool) or not isinstance(appointment_id, int):
            raise InvalidInputError("appointment_id must be an integer")
        if not validate_positive_id(appointment_id):
            return False

        updated = await self.db.update_appointment_status(
            appointment_id, AppointmentStatus(value)
        )
        if updated:
            logger.info(f"Appointment {appointment_id} set to {value}")
        else:
            logger.info(f"Status update for unknown appointment {appointment_id}")
        return updated
