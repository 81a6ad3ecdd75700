"""Appointment models for clinic bookings."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from utils.datetime_utils import format_time


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    PAID = "paid"


# ``paid`` is only ever set by the payment processor
UPDATABLE_STATUSES = frozenset(
    {
        AppointmentStatus.PENDING.value,
        AppointmentStatus.CONFIRMED.value,
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.COMPLETED.value,
    }
)


class Appointment(BaseModel):
    """Appointment model."""

    id: Optional[int] = None
    user_id: int = Field(..., gt=0)
    pet_id: int = Field(..., gt=0)
    service_id: int = Field(..., gt=0)
    appointment_date: date
    appointment_time: str = Field(..., description="Clinic-local time, HH:MM")
    notes: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.PENDING
    created_at: Optional[datetime] = None

    @field_validator("appointment_time", mode="before")
    @classmethod
    def normalize_time(cls, v):
        """Postgres returns ``HH:MM:SS``; the API speaks ``HH:MM``."""
        return format_time(v)

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "user_id": 1,
                "pet_id": 2,
                "service_id": 3,
                "appointment_date": "2030-01-10",
                "appointment_time": "11:00",
                "status": "pending",
            }
        }


class AppointmentCreate(BaseModel):
    """Appointment creation model."""

    user_id: int
    pet_id: int
    service_id: int
    appointment_date: date
    appointment_time: str
    notes: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.PENDING
    created_at: datetime

    class Config:
        use_enum_values = True


class AppointmentDetails(Appointment):
    """Appointment joined with owner, pet and service attributes."""

    user_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    pet_name: Optional[str] = None
    species: Optional[str] = None
    breed: Optional[str] = None
    age: Optional[int] = None
    service_name: Optional[str] = None
    price: Optional[Decimal] = None
