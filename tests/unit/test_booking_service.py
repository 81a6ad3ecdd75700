"""
Unit tests for the booking service.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from booking import BookingService
from utils.exceptions import (
    InvalidInputError,
    InvalidStatusError,
    NotFoundError,
    SlotUnavailableError,
    StorageError,
)


@pytest.mark.asyncio
async def test_create_books_slot_and_removes_it(booking_service, slot_calculator, store):
    appointment_id = await booking_service.create(
        user_id=1, pet_id=2, service_id=3, date="2030-01-10", time="11:00"
    )

    assert isinstance(appointment_id, int)
    assert store.appointments[appointment_id]["status"] == "pending"
    assert "11:00" not in await slot_calculator.get_available_slots("2030-01-10")


@pytest.mark.asyncio
async def test_create_stores_sanitized_notes(booking_service, store):
    appointment_id = await booking_service.create(
        user_id=1, pet_id=2, service_id=3, date="2030-01-10", time="09:00",
        notes="  limping on left leg\x07 ",
    )

    assert store.appointments[appointment_id]["notes"] == "limping on left leg"


@pytest.mark.asyncio
async def test_create_sends_confirmation_in_background(booking_service, notifier, dispatcher):
    appointment_id = await booking_service.create(
        user_id=1, pet_id=2, service_id=3, date="2030-01-10", time="11:00"
    )
    await dispatcher.drain()

    notifier.send_appointment_confirmation.assert_awaited_once_with(appointment_id)


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_booking(booking_service, notifier, dispatcher, store):
    notifier.send_appointment_confirmation = AsyncMock(side_effect=RuntimeError("smtp down"))

    appointment_id = await booking_service.create(
        user_id=1, pet_id=2, service_id=3, date="2030-01-10", time="11:00"
    )
    await dispatcher.drain()

    assert appointment_id in store.appointments
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_same_slot_twice_fails(booking_service):
    await booking_service.create(user_id=1, pet_id=2, service_id=3, date="2030-01-10", time="11:00")

    with pytest.raises(SlotUnavailableError):
        await booking_service.create(
            user_id=4, pet_id=5, service_id=6, date="2030-01-10", time="11:00"
        )


@pytest.mark.asyncio
async def test_concurrent_bookings_one_wins(booking_service, store):
    results = await asyncio.gather(
        booking_service.create(user_id=1, pet_id=2, service_id=3, date="2030-01-10", time="11:00"),
        booking_service.create(user_id=4, pet_id=5, service_id=6, date="2030-01-10", time="11:00"),
        return_exceptions=True,
    )

    successes = [r for r in results if isinstance(r, int)]
    failures = [r for r in results if isinstance(r, SlotUnavailableError)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert len(store.appointments) == 1


@pytest.mark.asyncio
async def test_cancelled_slot_can_be_rebooked(booking_service, store):
    store.add_appointment("2030-01-10", "11:00", status="cancelled")

    appointment_id = await booking_service.create(
        user_id=1, pet_id=2, service_id=3, date="2030-01-10", time="11:00"
    )

    assert store.appointments[appointment_id]["status"] == "pending"


@pytest.mark.asyncio
async def test_past_date_rejected(booking_service):
    with pytest.raises(InvalidInputError):
        await booking_service.create(
            user_id=1, pet_id=2, service_id=3, date="2029-12-31", time="11:00"
        )


@pytest.mark.asyncio
async def test_time_equal_to_now_rejected(store, slot_calculator):
    # 2030-01-10 11:00 in London (GMT in January) is 11:00 UTC
    now = datetime(2030, 1, 10, 11, 0, tzinfo=timezone.utc)
    service = BookingService(
        store, slot_calculator=slot_calculator, clock=lambda: now, tz_name="Europe/London"
    )

    with pytest.raises(InvalidInputError):
        await service.create(user_id=1, pet_id=2, service_id=3, date="2030-01-10", time="11:00")

    assert await service.create(
        user_id=1, pet_id=2, service_id=3, date="2030-01-10", time="11:30"
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "date,time",
    [
        ("2030-02-30", "11:00"),
        ("10/01/2030", "11:00"),
        ("2030-01-10", "noon"),
        ("", "11:00"),
        ("2030-01-10", ""),
    ],
)
async def test_malformed_date_or_time_rejected(booking_service, date, time):
    with pytest.raises(InvalidInputError):
        await booking_service.create(user_id=1, pet_id=2, service_id=3, date=date, time=time)


@pytest.mark.asyncio
@pytest.mark.parametrize("time", ["13:00", "13:30", "08:30", "17:00", "10:15"])
async def test_time_outside_slot_grid_rejected(booking_service, time):
    with pytest.raises(InvalidInputError):
        await booking_service.create(
            user_id=1, pet_id=2, service_id=3, date="2030-01-10", time=time
        )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "ids", [(None, 2, 3), (1, 0, 3), (1, 2, -3), (1, 2, "3")]
)
async def test_missing_ids_rejected(booking_service, ids):
    user_id, pet_id, service_id = ids
    with pytest.raises(InvalidInputError):
        await booking_service.create(
            user_id=user_id, pet_id=pet_id, service_id=service_id,
            date="2030-01-10", time="11:00",
        )


@pytest.mark.asyncio
async def test_unknown_pet_is_not_found(booking_service):
    with pytest.raises(NotFoundError):
        await booking_service.create(
            user_id=1, pet_id=999, service_id=3, date="2030-01-10", time="11:00"
        )


@pytest.mark.asyncio
async def test_storage_failure_propagates_without_notification(booking_service, store, notifier):
    store.insert_appointment = AsyncMock(side_effect=StorageError("connection reset"))

    with pytest.raises(StorageError):
        await booking_service.create(
            user_id=1, pet_id=2, service_id=3, date="2030-01-10", time="11:00"
        )

    notifier.send_appointment_confirmation.assert_not_called()


@pytest.mark.asyncio
async def test_get_appointments_filters_and_orders(booking_service, store):
    store.add_appointment("2030-01-11", "09:00", status="pending")
    store.add_appointment("2030-01-10", "14:00", status="confirmed")
    store.add_appointment("2030-01-10", "09:30", status="confirmed", user_id=4, pet_id=5)

    everything = await booking_service.get_appointments()
    assert [(str(a.appointment_date), a.appointment_time) for a in everything] == [
        ("2030-01-10", "09:30"),
        ("2030-01-10", "14:00"),
        ("2030-01-11", "09:00"),
    ]

    mine = await booking_service.get_appointments(user_id=1, status="confirmed")
    assert len(mine) == 1
    assert mine[0].pet_name == "Rex"
    assert mine[0].service_name == "Vaccination"

    on_day = await booking_service.get_appointments(date="2030-01-10")
    assert len(on_day) == 2


@pytest.mark.asyncio
async def test_get_appointments_rejects_unknown_status(booking_service):
    with pytest.raises(InvalidStatusError):
        await booking_service.get_appointments(status="archived")


@pytest.mark.asyncio
async def test_get_appointments_rejects_bad_date(booking_service):
    with pytest.raises(InvalidInputError):
        await booking_service.get_appointments(date="2030-1-1x")
