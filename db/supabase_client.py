"""
Supabase database client for the booking workflow.
Handles all database interactions for appointments, services and payments.

Atomicity Notes:
================
PostgREST does not expose client-side transactions, so every write that must
be atomic is a single statement or a Postgres function (see db/schema.sql):

1. Booking relies on the partial unique index ``appointments_active_slot_idx``.
   A conflicting insert fails with 23505 and surfaces as SlotUnavailableError;
   there is no separate availability pre-check.
2. Payment recording and refunds run inside ``record_appointment_payment`` and
   ``record_refund`` through RPC, so their statements commit or roll back together.

This client uses the service key which bypasses RLS.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

from postgrest.exceptions import APIError
from supabase import Client as SupabaseClientType
from supabase import create_client

from config import settings
from models.appointment import AppointmentCreate, AppointmentDetails, AppointmentStatus
from models.payment import Payment
from models.service import Service
from utils.constants import (
    PG_FOREIGN_KEY_VIOLATION,
    PG_UNIQUE_VIOLATION,
    SLOT_HOLDING_STATUSES,
)
from utils.datetime_utils import format_date, format_time, parse_iso_datetime, utc_now
from utils.exceptions import NotFoundError, SlotUnavailableError, StorageError
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__, log_file="db.log", log_dir="logs")

# PL/pgSQL no_data_found, raised by record_refund
PG_NO_DATA_FOUND = "P0002"

# Embedded resources give the joined appointment view in one request
APPOINTMENT_DETAILS_SELECT = (
    "*, "
    "users!inner(name, email, phone), "
    "pets!inner(name, species, breed, age), "
    "services!inner(name, price)"
)
PAYMENT_HISTORY_SELECT = (
    "*, appointments!inner(appointment_date, appointment_time, services(name))"
)


class SupabaseClient:
    """
    Supabase database client wrapper.

    Includes a small in-memory cache for the service catalogue, which changes
    rarely and is read on every booking page.
    """

    def __init__(self):
        """Initialize Supabase client."""
        self.client: SupabaseClientType = create_client(
            settings.supabase_url, settings.supabase_key
        )

        # Format: {cache_key: (data, expiry_time)}
        self._cache: Dict[str, Tuple[Any, datetime]] = {}
        self._cache_ttl = timedelta(minutes=5)

    # ========== Cache Helpers ==========

    def _get_from_cache(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        if key not in self._cache:
            return None

        data, expiry = self._cache[key]
        if utc_now() > expiry:
            del self._cache[key]
            return None

        return data

    def _set_cache(self, key: str, value: Any) -> None:
        """Set value in cache with TTL."""
        self._cache[key] = (value, utc_now() + self._cache_ttl)

    # ========== Service Operations ==========

    async def get_services(self) -> List[Service]:
        """Get the service catalogue ordered by name."""
        cached = self._get_from_cache("services:all")
        if cached is not None:
            return cached

        try:
            response = self.client.table("services").select("*").order("name").execute()
            services = [Service(**item) for item in response.data]
        except Exception as e:
            raise StorageError(f"Failed to get services: {e}") from e

        self._set_cache("services:all", services)
        return services

    async def get_service(self, service_id: int) -> Optional[Service]:
        """Get a service by ID."""
        for service in await self.get_services():
            if service.id == service_id:
                return service
        return None

    # ========== Appointment Operations ==========

    async def get_booked_times(self, day: date) -> Set[str]:
        """Get the ``HH:MM`` times held by pending or confirmed appointments on a day."""
        try:
            response = (
                self.client.table("appointments")
                .select("appointment_time")
                .eq("appointment_date", format_date(day))
                .in_("status", list(SLOT_HOLDING_STATUSES))
                .execute()
            )
            return {format_time(item["appointment_time"]) for item in response.data}
        except Exception as e:
            raise StorageError(f"Failed to get booked slots: {e}") from e

    async def insert_appointment(self, appointment: AppointmentCreate) -> int:
        """
        Insert an appointment if its slot is free.

        The partial unique index makes the availability check and the insert
        one atomic statement.

        Returns:
            Generated appointment ID

        Raises:
            SlotUnavailableError: Slot already held by a pending/confirmed appointment
            NotFoundError: Referenced user, pet or service does not exist
            StorageError: Any other database failure
        """
        data = appointment.model_dump(mode="json", exclude_none=True)
        try:
            response = self.client.table("appointments").insert(data).execute()
        except APIError as e:
            if e.code == PG_UNIQUE_VIOLATION:
                logger.info(
                    f"Slot conflict for {data['appointment_date']} "
                    f"{data['appointment_time']}"
                )
                raise SlotUnavailableError(
                    "This time slot is no longer available"
                ) from e
            if e.code == PG_FOREIGN_KEY_VIOLATION:
                raise NotFoundError(
                    "Referenced user, pet or service does not exist"
                ) from e
            raise StorageError(f"Failed to create appointment: {e}") from e
        except Exception as e:
            raise StorageError(f"Failed to create appointment: {e}") from e

        if not response.data:
            raise StorageError("Failed to create appointment: no data returned")

        return int(response.data[0]["id"])

    async def update_appointment_status(
        self, appointment_id: int, status: AppointmentStatus
    ) -> bool:
        """
        Set an appointment's status.

        Returns:
            True if a row changed, False if the ID matched nothing
        """
        try:
            response = (
                self.client.table("appointments")
                .update({"status": AppointmentStatus(status).value})
                .eq("id", appointment_id)
                .execute()
            )
            return len(response.data) > 0
        except APIError as e:
            if e.code == PG_UNIQUE_VIOLATION:
                # e.g. re-confirming a cancelled appointment whose slot was rebooked
                raise SlotUnavailableError(
                    "This time slot is held by another appointment"
                ) from e
            raise StorageError(f"Failed to update appointment status: {e}") from e
        except Exception as e:
            raise StorageError(f"Failed to update appointment status: {e}") from e

    async def get_appointments(
        self,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        day: Optional[date] = None,
    ) -> List[AppointmentDetails]:
        """
        Get appointments joined with owner, pet and service details.

        Args:
            user_id: Only this user's appointments
            status: Only appointments with this status
            day: Only appointments on this date

        Returns:
            Appointments ordered by date, then time
        """
        try:
            query = self.client.table("appointments").select(APPOINTMENT_DETAILS_SELECT)

            if user_id:
                query = query.eq("user_id", user_id)
            if status:
                query = query.eq("status", status)
            if day:
                query = query.eq("appointment_date", format_date(day))

            query = query.order("appointment_date").order("appointment_time")
            response = query.execute()

            return [self._parse_appointment_details(item) for item in response.data]
        except Exception as e:
            raise StorageError(f"Failed to get appointments: {e}") from e

    async def get_appointment_details(
        self, appointment_id: int
    ) -> Optional[AppointmentDetails]:
        """Get one appointment with its joined details."""
        try:
            response = (
                self.client.table("appointments")
                .select(APPOINTMENT_DETAILS_SELECT)
                .eq("id", appointment_id)
                .execute()
            )
            if response.data:
                return self._parse_appointment_details(response.data[0])
            return None
        except Exception as e:
            raise StorageError(f"Failed to get appointment: {e}") from e

    async def get_payable_appointment(
        self, appointment_id: int, user_id: int
    ) -> Optional[AppointmentDetails]:
        """Get the user's appointment if it is confirmed and awaiting payment."""
        try:
            response = (
                self.client.table("appointments")
                .select(APPOINTMENT_DETAILS_SELECT)
                .eq("id", appointment_id)
                .eq("user_id", user_id)
                .eq("status", AppointmentStatus.CONFIRMED.value)
                .execute()
            )
            if response.data:
                return self._parse_appointment_details(response.data[0])
            return None
        except Exception as e:
            raise StorageError(f"Failed to get payable appointment: {e}") from e

    # ========== Payment Operations ==========

    async def record_payment(
        self,
        user_id: int,
        appointment_id: int,
        amount: Any,
        currency: str,
        payment_intent_id: str,
        status: str,
    ) -> int:
        """
        Record a payment, marking the appointment paid when it succeeded.

        Both writes run in one transaction inside ``record_appointment_payment``.
        """
        try:
            response = self.client.rpc(
                "record_appointment_payment",
                {
                    "p_user_id": user_id,
                    "p_appointment_id": appointment_id,
                    "p_amount": str(amount),
                    "p_currency": currency,
                    "p_payment_intent_id": payment_intent_id,
                    "p_status": status,
                },
            ).execute()
            return int(response.data)
        except Exception as e:
            raise StorageError(f"Failed to record payment: {e}") from e

    async def confirm_payment(self, payment_intent_id: str) -> Optional[str]:
        """
        Mark a payment succeeded and promote its appointment from confirmed to paid.

        A refunded payment and a cancelled appointment keep their status.

        Returns:
            The appointment status afterwards, or None if no payment has that
            intent id
        """
        try:
            response = self.client.rpc(
                "confirm_appointment_payment",
                {"p_payment_intent_id": payment_intent_id},
            ).execute()
            return response.data or None
        except Exception as e:
            raise StorageError(f"Failed to confirm payment: {e}") from e

    async def get_refundable_payment(self, payment_intent_id: str) -> Optional[Payment]:
        """Get a succeeded payment by its Stripe payment intent ID."""
        try:
            response = (
                self.client.table("payments")
                .select("*")
                .eq("payment_intent_id", payment_intent_id)
                .eq("status", "succeeded")
                .execute()
            )
            if response.data:
                return self._parse_payment(response.data[0])
            return None
        except Exception as e:
            raise StorageError(f"Failed to get payment: {e}") from e

    async def record_refund(
        self, payment_intent_id: str, admin_id: int, refund_id: str
    ) -> int:
        """
        Mark a payment refunded, cancel its appointment and record the refund.

        All three writes run in one transaction inside ``record_refund``.

        Raises:
            NotFoundError: The payment is no longer refundable
        """
        try:
            response = self.client.rpc(
                "record_refund",
                {
                    "p_payment_intent_id": payment_intent_id,
                    "p_admin_id": admin_id,
                    "p_refund_id": refund_id,
                },
            ).execute()
            return int(response.data)
        except APIError as e:
            if e.code == PG_NO_DATA_FOUND:
                raise NotFoundError(
                    "Payment not found or not eligible for refund"
                ) from e
            raise StorageError(f"Failed to record refund: {e}") from e
        except Exception as e:
            raise StorageError(f"Failed to record refund: {e}") from e

    async def get_payment_history(self, user_id: int) -> List[Payment]:
        """Get a user's payments, newest first."""
        try:
            response = (
                self.client.table("payments")
                .select(PAYMENT_HISTORY_SELECT)
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
            return [self._parse_payment(item) for item in response.data]
        except Exception as e:
            raise StorageError(f"Failed to get payment history: {e}") from e

    async def get_succeeded_payments_since(self, since: datetime) -> List[Payment]:
        """Get succeeded payments created at or after ``since``."""
        try:
            response = (
                self.client.table("payments")
                .select("*")
                .eq("status", "succeeded")
                .gte("created_at", since.isoformat())
                .execute()
            )
            return [self._parse_payment(item) for item in response.data]
        except Exception as e:
            raise StorageError(f"Failed to get payments: {e}") from e

    # ========== Admin Operations ==========

    async def count_rows(self, table: str) -> int:
        """Count rows in a table (admin analytics)."""
        try:
            response = (
                self.client.table(table).select("id", count="exact").limit(1).execute()
            )
            return int(response.count or 0)
        except Exception as e:
            raise StorageError(f"Failed to count {table}: {e}") from e

    # ========== Helper Methods ==========

    def _parse_appointment_details(self, item: dict) -> AppointmentDetails:
        """
        Flatten an appointment row with embedded users/pets/services.

        Args:
            item: Raw appointment data from database

        Returns:
            Parsed AppointmentDetails object
        """
        item = item.copy()
        user = item.pop("users", None) or {}
        pet = item.pop("pets", None) or {}
        service = item.pop("services", None) or {}

        if item.get("created_at"):
            item["created_at"] = parse_iso_datetime(item["created_at"])

        item.update(
            user_name=user.get("name"),
            email=user.get("email"),
            phone=user.get("phone"),
            pet_name=pet.get("name"),
            species=pet.get("species"),
            breed=pet.get("breed"),
            age=pet.get("age"),
            service_name=service.get("name"),
            price=service.get("price"),
        )
        return AppointmentDetails(**item)

    def _parse_payment(self, item: dict) -> Payment:
        """
        Parse payment data, flattening the embedded appointment if present.

        Args:
            item: Raw payment data from database

        Returns:
            Parsed Payment object
        """
        item = item.copy()
        appointment = item.pop("appointments", None) or {}
        for field in ["created_at", "refunded_at"]:
            if item.get(field):
                item[field] = parse_iso_datetime(item[field])

        if appointment:
            item["appointment_date"] = appointment.get("appointment_date")
            if appointment.get("appointment_time"):
                item["appointment_time"] = format_time(appointment["appointment_time"])
            item["service_name"] = (appointment.get("services") or {}).get("name")
        return Payment(**item)


# Global database client instance
_db_client: Optional[SupabaseClient] = None


def get_db_client() -> SupabaseClient:
    """Get or create database client instance."""
    global _db_client
    if _db_client is None:
        _db_client = SupabaseClient()
    return _db_client
