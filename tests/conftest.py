"""
Pytest configuration and shared fixtures.
"""

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Set
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from booking import BookingService, SlotCalculator, StatusManager
from config import settings
from models.appointment import AppointmentCreate, AppointmentDetails, AppointmentStatus
from models.payment import Payment
from models.service import Service
from notifications import NotificationDispatcher
from utils.constants import SLOT_HOLDING_STATUSES
from utils.datetime_utils import format_time
from utils.exceptions import NotFoundError, SlotUnavailableError

# 2030-01-01 08:00 UTC; every test booking date lies after this instant
FIXED_NOW = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)


class FakeAppointmentStore:
    """
    In-memory stand-in for ``SupabaseClient``.

    Enforces the same uniqueness rule as ``appointments_active_slot_idx``:
    at most one pending or confirmed appointment per (date, time).
    """

    def __init__(self):
        self.users: Dict[int, dict] = {
            1: {"name": "Alice Owner", "email": "alice@example.com", "phone": "0123"},
            4: {"name": "Bob Owner", "email": "bob@example.com", "phone": "0456"},
        }
        self.pets: Dict[int, dict] = {
            2: {"name": "Rex", "species": "dog", "breed": "Labrador", "age": 4},
            5: {"name": "Tom", "species": "cat", "breed": None, "age": 2},
        }
        self.services: Dict[int, Service] = {
            3: Service(id=3, name="Vaccination", price=Decimal("45.00")),
            6: Service(id=6, name="Consultation", price=Decimal("30.00")),
        }
        self.appointments: Dict[int, dict] = {}
        self.payments: List[Payment] = []
        self.refunds: List[dict] = []
        self._next_id = 1

    # ========== Seeding ==========

    def add_appointment(
        self,
        day: str,
        at: str,
        status: str = "pending",
        user_id: int = 1,
        pet_id: int = 2,
        service_id: int = 3,
    ) -> int:
        appointment_id = self._next_id
        self._next_id += 1
        self.appointments[appointment_id] = {
            "id": appointment_id,
            "user_id": user_id,
            "pet_id": pet_id,
            "service_id": service_id,
            "appointment_date": date.fromisoformat(day),
            "appointment_time": at,
            "notes": None,
            "status": status,
            "created_at": None,
        }
        return appointment_id

    def _slot_taken(self, day: date, at: str, exclude_id: Optional[int] = None) -> bool:
        return any(
            row["appointment_date"] == day
            and row["appointment_time"] == at
            and row["status"] in SLOT_HOLDING_STATUSES
            and row["id"] != exclude_id
            for row in self.appointments.values()
        )

    def _details(self, row: dict) -> AppointmentDetails:
        user = self.users.get(row["user_id"], {})
        pet = self.pets.get(row["pet_id"], {})
        service = self.services.get(row["service_id"])
        return AppointmentDetails(
            **row,
            user_name=user.get("name"),
            email=user.get("email"),
            phone=user.get("phone"),
            pet_name=pet.get("name"),
            species=pet.get("species"),
            breed=pet.get("breed"),
            age=pet.get("age"),
            service_name=service.name if service else None,
            price=service.price if service else None,
        )

    # ========== Store interface ==========

    async def get_services(self) -> List[Service]:
        return sorted(self.services.values(), key=lambda s: s.name)

    async def get_service(self, service_id: int) -> Optional[Service]:
        return self.services.get(service_id)

    async def get_booked_times(self, day: date) -> Set[str]:
        return {
            row["appointment_time"]
            for row in self.appointments.values()
            if row["appointment_date"] == day and row["status"] in SLOT_HOLDING_STATUSES
        }

    async def insert_appointment(self, appointment: AppointmentCreate) -> int:
        # Yield so concurrent bookings interleave before the atomic section
        await asyncio.sleep(0)

        data = appointment.model_dump()
        if (
            data["user_id"] not in self.users
            or data["pet_id"] not in self.pets
            or data["service_id"] not in self.services
        ):
            raise NotFoundError("Referenced user, pet or service does not exist")

        at = format_time(data["appointment_time"])
        if self._slot_taken(data["appointment_date"], at):
            raise SlotUnavailableError("This time slot is no longer available")

        appointment_id = self._next_id
        self._next_id += 1
        self.appointments[appointment_id] = {
            **data,
            "id": appointment_id,
            "appointment_time": at,
            "status": AppointmentStatus(data["status"]).value,
        }
        return appointment_id

    async def update_appointment_status(self, appointment_id: int, status) -> bool:
        row = self.appointments.get(appointment_id)
        if row is None:
            return False
        value = AppointmentStatus(status).value
        if value in SLOT_HOLDING_STATUSES and self._slot_taken(
            row["appointment_date"], row["appointment_time"], exclude_id=appointment_id
        ):
            raise SlotUnavailableError("This time slot is held by another appointment")
        row["status"] = value
        return True

    async def get_appointments(
        self,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        day: Optional[date] = None,
    ) -> List[AppointmentDetails]:
        rows = [
            row
            for row in self.appointments.values()
            if (user_id is None or row["user_id"] == user_id)
            and (status is None or row["status"] == status)
            and (day is None or row["appointment_date"] == day)
        ]
        rows.sort(key=lambda r: (r["appointment_date"], r["appointment_time"]))
        return [self._details(row) for row in rows]

    async def get_appointment_details(self, appointment_id: int) -> Optional[AppointmentDetails]:
        row = self.appointments.get(appointment_id)
        return self._details(row) if row else None

    async def get_payable_appointment(
        self, appointment_id: int, user_id: int
    ) -> Optional[AppointmentDetails]:
        row = self.appointments.get(appointment_id)
        if row and row["user_id"] == user_id and row["status"] == "confirmed":
            return self._details(row)
        return None

    async def record_payment(
        self, user_id, appointment_id, amount, currency, payment_intent_id, status
    ) -> int:
        payment = Payment(
            id=len(self.payments) + 1,
            user_id=user_id,
            appointment_id=appointment_id,
            amount=amount,
            currency=currency,
            payment_intent_id=payment_intent_id,
            status=status,
            created_at=FIXED_NOW,
        )
        self.payments.append(payment)
        row = self.appointments[appointment_id]
        if status == "succeeded" and row["status"] == "confirmed":
            row["status"] = "paid"
        return payment.id

    async def confirm_payment(self, payment_intent_id: str) -> Optional[str]:
        for payment in self.payments:
            if payment.payment_intent_id == payment_intent_id:
                if payment.status != "refunded":
                    payment.status = "succeeded"
                row = self.appointments[payment.appointment_id]
                if row["status"] == "confirmed":
                    row["status"] = "paid"
                return row["status"]
        return None

    async def get_refundable_payment(self, payment_intent_id: str) -> Optional[Payment]:
        for payment in self.payments:
            if payment.payment_intent_id == payment_intent_id and payment.status == "succeeded":
                return payment
        return None

    async def record_refund(self, payment_intent_id: str, admin_id: int, refund_id: str) -> int:
        payment = await self.get_refundable_payment(payment_intent_id)
        if payment is None:
            raise NotFoundError("Payment not found or not eligible for refund")
        payment.status = "refunded"
        payment.refunded_at = FIXED_NOW
        self.appointments[payment.appointment_id]["status"] = "cancelled"
        self.refunds.append(
            {"payment_id": payment.id, "admin_id": admin_id, "refund_id": refund_id}
        )
        return len(self.refunds)

    async def get_payment_history(self, user_id: int) -> List[Payment]:
        return [p for p in reversed(self.payments) if p.user_id == user_id]

    async def get_succeeded_payments_since(self, since: datetime) -> List[Payment]:
        return [
            p
            for p in self.payments
            if p.status == "succeeded" and (p.created_at is None or p.created_at >= since)
        ]

    async def count_rows(self, table: str) -> int:
        return len(getattr(self, table))


@pytest.fixture
def store():
    """Empty appointment store with two users, two pets and two services."""
    return FakeAppointmentStore()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def notifier():
    """Notifier whose sends succeed without touching SMTP."""
    mock = MagicMock()
    mock.send_appointment_confirmation = AsyncMock(return_value=True)
    mock.send_payment_confirmation = AsyncMock(return_value=True)
    mock.send_refund_confirmation = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def dispatcher():
    return NotificationDispatcher()


@pytest.fixture
def slot_calculator(store):
    return SlotCalculator(
        store, open_hour=9, close_hour=17, lunch_start_hour=13, lunch_end_hour=14, slot_minutes=30
    )


@pytest.fixture
def booking_service(store, notifier, dispatcher, slot_calculator, fixed_clock):
    return BookingService(
        store,
        notifier=notifier,
        dispatcher=dispatcher,
        slot_calculator=slot_calculator,
        clock=fixed_clock,
        tz_name="Europe/London",
    )


@pytest.fixture
def status_manager(store):
    return StatusManager(store)


@pytest.fixture
def admin_user(monkeypatch):
    """Make user 99 a clinic administrator."""
    monkeypatch.setattr(settings, "admin_user_ids", "99")
    return 99


@pytest.fixture
def mock_supabase_client():
    """Create a mock Supabase client."""
    mock_client = MagicMock()
    mock_table = MagicMock()
    mock_client.table.return_value = mock_table
    return mock_client, mock_table


@pytest.fixture
def supabase_client(mock_supabase_client):
    """SupabaseClient wired to the mocked client."""
    from db.supabase_client import SupabaseClient

    mock_client, _ = mock_supabase_client
    with patch("db.supabase_client.create_client", return_value=mock_client):
        return SupabaseClient()

