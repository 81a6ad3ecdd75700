"""
HTTP service entry point for the PDSA clinic booking system.

Run locally with ``python server.py``. In production run it under a process
manager (systemd, supervisor, etc.) behind the identity gateway that sets
the ``X-User-Id`` header.
"""

import sys
from datetime import datetime
from typing import Callable

from aiohttp import web

from api import (
    admin_routes,
    error_middleware,
    identity_middleware,
    routes,
    security_headers_middleware,
)
from api.keys import BOOKING_KEY, DB_KEY, NOTIFIER_KEY, SLOTS_KEY, STATUS_KEY
from booking import BookingService, SlotCalculator, StatusManager
from config import settings
from notifications import EmailNotifier, get_dispatcher
from utils.datetime_utils import utc_now
from utils.logging_config import setup_logging
from webhook import register_webhook_routes

logger = setup_logging(name=__name__, log_file="server.log", log_dir="logs")


async def _drain_notifications(app: web.Application) -> None:
    dispatcher = get_dispatcher()
    if dispatcher.pending:
        logger.info(f"Waiting for {dispatcher.pending} notification(s) before shutdown")
    await dispatcher.drain()


def create_app(
    db=None,
    notifier=None,
    clock: Callable[[], datetime] = utc_now,
) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        db: Persistence collaborator (default: the shared ``SupabaseClient``)
        notifier: Email notifier (default: ``EmailNotifier`` over ``db``)
        clock: Current-time source used for booking checks
    """
    if db is None:
        from db import get_db_client

        db = get_db_client()
    if notifier is None:
        notifier = EmailNotifier(db)

    slot_calculator = SlotCalculator(db)

    app = web.Application(
        middlewares=[security_headers_middleware, error_middleware, identity_middleware]
    )
    app[DB_KEY] = db
    app[NOTIFIER_KEY] = notifier
    app[SLOTS_KEY] = slot_calculator
    app[BOOKING_KEY] = BookingService(
        db,
        notifier=notifier,
        dispatcher=get_dispatcher(),
        slot_calculator=slot_calculator,
        clock=clock,
    )
    app[STATUS_KEY] = StatusManager(db)

    app.add_routes(routes)
    app.add_routes(admin_routes)
    register_webhook_routes(app)

    app.on_shutdown.append(_drain_notifications)
    return app


def main() -> None:
    try:
        settings.validate_all_required()
    except ValueError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)

    logger.info(
        f"Starting booking service on {settings.host}:{settings.port} "
        f"({settings.environment})"
    )
    web.run_app(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
