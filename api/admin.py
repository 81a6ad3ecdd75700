"""
Administrator endpoints: dashboard analytics and refunds.
"""

from aiohttp import web
from aiohttp.web import Request, Response

from analytics import get_dashboard_stats
from api.keys import DB_KEY, NOTIFIER_KEY
from api.middleware import require_admin
from payments import refund_payment
from utils.datetime_utils import parse_date
from utils.exceptions import InvalidInputError

admin_routes = web.RouteTableDef()


@admin_routes.get("/admin/analytics/dashboard")
async def dashboard(request: Request) -> Response:
    """Today's appointments, revenue and patient counts (``?date=`` to override)."""
    require_admin(request)

    today = None
    if request.query.get("date"):
        try:
            today = parse_date(request.query["date"])
        except ValueError as e:
            raise InvalidInputError(str(e)) from e

    stats = await get_dashboard_stats(request.app[DB_KEY], today)
    return web.json_response(stats)


@admin_routes.post("/payments/{payment_intent_id}/refund")
async def refund(request: Request) -> Response:
    """Refund a payment in full and cancel its appointment."""
    admin_id = require_admin(request)

    result = await refund_payment(
        request.match_info["payment_intent_id"],
        admin_id,
        db=request.app[DB_KEY],
        notifier=request.app[NOTIFIER_KEY],
    )
    return web.json_response(
        {
            "status": "success",
            "refund_id": result["refund_id"],
            "refund_status": result["status"],
            "amount": str(result["amount"]),
            "appointment_id": result["appointment_id"],
        }
    )
