"""
Client-facing endpoints: slots, services, appointments and payments.
"""

from aiohttp import web
from aiohttp.web import Request, Response

from api.keys import BOOKING_KEY, DB_KEY, NOTIFIER_KEY, SLOTS_KEY, STATUS_KEY
from api.middleware import forbidden, require_user
from api.schemas import AppointmentRequest, PaymentRequest, StatusUpdateRequest, parse_body
from config import settings
from models.appointment import AppointmentStatus
from payments import get_payment_history, process_appointment_payment
from utils.exceptions import InvalidInputError, NotFoundError
from utils.validation import coerce_id

routes = web.RouteTableDef()


@routes.get("/slots")
async def list_slots(request: Request) -> Response:
    """``GET /slots?date=YYYY-MM-DD``"""
    day = request.query.get("date")
    if not day:
        raise InvalidInputError("date query parameter is required")

    slots = await request.app[SLOTS_KEY].get_available_slots(day)
    return web.json_response({"date": day, "slots": slots})


@routes.get("/services")
async def list_services(request: Request) -> Response:
    services = await request.app[DB_KEY].get_services()
    return web.json_response([s.model_dump(mode="json") for s in services])


@routes.post("/appointments")
async def create_appointment(request: Request) -> Response:
    """Book a slot for the acting user."""
    user_id = require_user(request)
    body = await parse_body(request, AppointmentRequest)

    appointment_id = await request.app[BOOKING_KEY].create(
        user_id=user_id,
        pet_id=body.pet_id,
        service_id=body.service_id,
        date=body.date,
        time=body.time,
        notes=body.notes,
    )
    return web.json_response(
        {
            "id": appointment_id,
            "status": AppointmentStatus.PENDING.value,
            "message": "Appointment created successfully",
        },
        status=201,
    )


@routes.get("/appointments")
async def list_appointments(request: Request) -> Response:
    """
    ``GET /appointments?userId&status&date``

    Administrators may query any user; everyone else only sees their own.
    """
    user_id = require_user(request)

    raw_filter = request.query.get("userId")
    filter_user_id = coerce_id(raw_filter)
    if raw_filter and filter_user_id is None:
        raise InvalidInputError("userId must be a positive integer")

    if not settings.is_admin(user_id):
        if filter_user_id is not None and filter_user_id != user_id:
            raise forbidden("You can only view your own appointments")
        filter_user_id = user_id

    appointments = await request.app[BOOKING_KEY].get_appointments(
        user_id=filter_user_id,
        status=request.query.get("status") or None,
        date=request.query.get("date") or None,
    )
    return web.json_response([a.model_dump(mode="json") for a in appointments])


@routes.patch(r"/appointments/{id:\d+}/status")
async def update_appointment_status(request: Request) -> Response:
    """
    Change an appointment's status.

    Administrators may set any allowed status; owners may only cancel.
    """
    user_id = require_user(request)
    appointment_id = int(request.match_info["id"])
    body = await parse_body(request, StatusUpdateRequest)

    if not settings.is_admin(user_id):
        if body.status != AppointmentStatus.CANCELLED.value:
            raise forbidden("Only administrators can set this status")
        details = await request.app[DB_KEY].get_appointment_details(appointment_id)
        if details is None or details.user_id != user_id:
            raise NotFoundError("Appointment not found")

    updated = await request.app[STATUS_KEY].update_status(appointment_id, body.status)
    return web.json_response({"id": appointment_id, "updated": updated})


@routes.post(r"/appointments/{id:\d+}/payment")
async def pay_for_appointment(request: Request) -> Response:
    """Charge the acting user's card for a confirmed appointment."""
    user_id = require_user(request)
    appointment_id = int(request.match_info["id"])
    body = await parse_body(request, PaymentRequest)

    result = await process_appointment_payment(
        appointment_id,
        body.payment_method_id,
        user_id,
        db=request.app[DB_KEY],
        notifier=request.app[NOTIFIER_KEY],
    )
    return web.json_response(result.model_dump(mode="json"))


@routes.get("/payments")
async def payment_history(request: Request) -> Response:
    user_id = require_user(request)
    payments = await get_payment_history(user_id, db=request.app[DB_KEY])
    return web.json_response([p.model_dump(mode="json") for p in payments])
