"""
Booking service: validates a requested slot and creates the appointment.

The availability check and the insert are one atomic operation in the store
(see ``SupabaseClient.insert_appointment``). The confirmation email is sent
from a background task and never affects the booking result.
"""

from datetime import date, datetime
from typing import Callable, List, Optional, Union

from booking.slots import SlotCalculator
from models.appointment import AppointmentCreate, AppointmentDetails, AppointmentStatus
from notifications.dispatcher import NotificationDispatcher, get_dispatcher
from utils.constants import MAX_NOTES_LENGTH
from utils.datetime_utils import combine_local, format_date, parse_date, parse_time, utc_now
from utils.exceptions import (
    InvalidInputError,
    InvalidStatusError,
    SlotUnavailableError,
    StorageError,
)
from utils.logging_config import setup_logging
from utils.validation import sanitize_text, validate_positive_id

logger = setup_logging(name=__name__, log_file="booking.log", log_dir="logs")


class BookingService:
    """Creates and lists appointments on behalf of an explicit user."""

    def __init__(
        self,
        db,
        notifier=None,
        dispatcher: Optional[NotificationDispatcher] = None,
        slot_calculator: Optional[SlotCalculator] = None,
        clock: Callable[[], datetime] = utc_now,
        tz_name: Optional[str] = None,
    ):
        """
        Args:
            db: Persistence collaborator (``SupabaseClient`` in production)
            notifier: Object with ``send_appointment_confirmation(appointment_id)``
            dispatcher: Runs notifications in the background
            slot_calculator: Defines which times are bookable
            clock: Returns the current server time (timezone-aware)
            tz_name: Clinic timezone; defaults to ``settings.timezone``
        """
        self.db = db
        self.notifier = notifier
        self.dispatcher = dispatcher or get_dispatcher()
        self.slots = slot_calculator or SlotCalculator(db)
        self.clock = clock
        self.tz_name = tz_name

    async def create(
        self,
        user_id: int,
        pet_id: int,
        service_id: int,
        date: Union[str, date],
        time: str,
        notes: Optional[str] = None,
    ) -> int:
        """
        Book an appointment in ``pending`` status.

        Args:
            user_id: Acting user (from the identity collaborator)
            pet_id: Pet being seen
            service_id: Service being booked
            date: Appointment date, ``YYYY-MM-DD``
            time: Appointment time, ``HH:MM``
            notes: Optional free-text notes

        Returns:
            The new appointment's ID

        Raises:
            InvalidInputError: Missing IDs, unparseable or non-future date/time,
                or a time that is not a clinic slot
            SlotUnavailableError: The slot is already held
            NotFoundError: User, pet or service does not exist
            StorageError: The store failed
        """
        for name, value in (
            ("user_id", user_id),
            ("pet_id", pet_id),
            ("service_id", service_id),
        ):
            if not validate_positive_id(value):
                raise InvalidInputError(f"{name} is required")

        try:
            day = parse_date(date)
            at = parse_time(time)
        except ValueError as e:
            raise InvalidInputError("Invalid appointment date/time") from e

        now = self.clock()
        requested = combine_local(day, at, self.tz_name)
        if requested <= now:
            raise InvalidInputError("Appointment date/time must be in the future")

        if not self.slots.is_candidate(at):
            raise InvalidInputError(
                f"{at.strftime('%H:%M')} is not a bookable slot during clinic hours"
            )

        appointment = AppointmentCreate(
            user_id=user_id,
            pet_id=pet_id,
            service_id=service_id,
            appointment_date=day,
            appointment_time=at.strftime("%H:%M"),
            notes=sanitize_text(notes, MAX_NOTES_LENGTH) or None,
            status=AppointmentStatus.PENDING,
            created_at=now,
        )

        try:
            appointment_id = await self.db.insert_appointment(appointment)
        except SlotUnavailableError:
            logger.info(
                f"User {user_id} lost slot {format_date(day)} {appointment.appointment_time}"
            )
            raise
        except StorageError as e:
            logger.error(f"Failed to create appointment: {e}", exc_info=True)
            raise

        logger.info(
            f"Created appointment {appointment_id} for user {user_id} "
            f"on {format_date(day)} at {appointment.appointment_time}"
        )

        if self.notifier is not None:
            self.dispatcher.dispatch(
                self.notifier.send_appointment_confirmation(appointment_id),
                f"confirmation email for appointment {appointment_id}",
            )

        return appointment_id

    async def get_appointments(
        self,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        date: Union[str, date, None] = None,
    ) -> List[AppointmentDetails]:
        """
        List appointments with owner, pet and service details.

        Filters combine with AND; results are ordered by date then time.

        Raises:
            InvalidInputError: Malformed date or user ID
            InvalidStatusError: Unknown status filter
        """
        if user_id is not None and not validate_positive_id(user_id):
            raise InvalidInputError("user_id must be a positive integer")

        if status:
            try:
                status = AppointmentStatus(status).value
            except ValueError as e:
                raise InvalidStatusError(f"Invalid status: {status}") from e

        day = None
        if date:
            try:
                day = parse_date(date)
            except ValueError as e:
                raise InvalidInputError(str(e)) from e

        return await self.db.get_appointments(user_id=user_id, status=status, day=day)
