"""
Slot calculation for a clinic day.

Slots are derived from working hours rather than stored: every increment
between opening and closing time, minus the lunch break, minus the times
already held by pending or confirmed appointments.
"""

from datetime import date, time
from typing import List, Optional, Union

from config import settings
from utils.datetime_utils import parse_date
from utils.exceptions import InvalidInputError


class SlotCalculator:
    """Computes bookable ``HH:MM`` slots for a day."""

    def __init__(
        self,
        db,
        open_hour: Optional[int] = None,
        close_hour: Optional[int] = None,
        lunch_start_hour: Optional[int] = None,
        lunch_end_hour: Optional[int] = None,
        slot_minutes: Optional[int] = None,
    ):
        self.db = db
        self.open_hour = settings.clinic_open_hour if open_hour is None else open_hour
        self.close_hour = settings.clinic_close_hour if close_hour is None else close_hour
        self.lunch_start_hour = (
            settings.lunch_start_hour if lunch_start_hour is None else lunch_start_hour
        )
        self.lunch_end_hour = (
            settings.lunch_end_hour if lunch_end_hour is None else lunch_end_hour
        )
        self.slot_minutes = (
            settings.slot_duration_minutes if slot_minutes is None else slot_minutes
        )

    def candidate_slots(self) -> List[str]:
        """All slot start times for a day, in order, lunch excluded."""
        lunch_start = self.lunch_start_hour * 60
        lunch_end = self.lunch_end_hour * 60

        slots = []
        for minute in range(self.open_hour * 60, self.close_hour * 60, self.slot_minutes):
            if lunch_start <= minute < lunch_end:
                continue
            slots.append(f"{minute // 60:02d}:{minute % 60:02d}")
        return slots

    def is_candidate(self, at: time) -> bool:
        """Whether ``at`` is a slot start time (on the grid, in hours, not lunch)."""
        if at.second or at.microsecond:
            return False
        return at.strftime("%H:%M") in self.candidate_slots()

    async def get_available_slots(self, day: Union[str, date]) -> List[str]:
        """
        Get the free slots for a date.

        Args:
            day: Calendar date or ``YYYY-MM-DD`` string

        Returns:
            Free ``HH:MM`` slots in chronological order (possibly empty)

        Raises:
            InvalidInputError: If the date cannot be parsed
        """
        try:
            day = parse_date(day)
        except ValueError as e:
            raise InvalidInputError(str(e)) from e

        booked = await self.db.get_booked_times(day)
        return [slot for slot in self.candidate_slots() if slot not in booked]
