"""
aiohttp middlewares: security headers, request identity and error mapping.
"""

import json
from typing import Optional

from aiohttp import web
from aiohttp.web import Request, Response

from config import settings
from utils.exceptions import (
    InvalidInputError,
    InvalidStatusError,
    NotFoundError,
    PaymentError,
    SlotUnavailableError,
    StorageError,
)
from utils.logging_config import setup_logging
from utils.validation import coerce_id

logger = setup_logging(name=__name__, log_file="api.log", log_dir="logs")

USER_ID_HEADER = "X-User-Id"
GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again later."


def json_error(status: int, error: str, message: str) -> Response:
    """Build the JSON error envelope used by every endpoint."""
    return web.json_response(
        {"status": "error", "error": error, "message": message}, status=status
    )


def _http_error(exc_cls, error: str, message: str) -> web.HTTPException:
    return exc_cls(
        text=json.dumps({"status": "error", "error": error, "message": message}),
        content_type="application/json",
    )


def require_user(request: Request) -> int:
    """
    Return the acting user's ID.

    Raises:
        HTTPUnauthorized: No identity on the request
    """
    user_id: Optional[int] = request.get("user_id")
    if user_id is None:
        raise _http_error(
            web.HTTPUnauthorized, "unauthenticated", f"{USER_ID_HEADER} header required"
        )
    return user_id


def require_admin(request: Request) -> int:
    """
    Return the acting user's ID if they are a clinic administrator.

    Raises:
        HTTPUnauthorized: No identity on the request
        HTTPForbidden: The user is not an administrator
    """
    user_id = require_user(request)
    if not settings.is_admin(user_id):
        raise _http_error(
            web.HTTPForbidden, "forbidden", "This action is only available to administrators"
        )
    return user_id


def forbidden(message: str) -> web.HTTPException:
    """403 with the standard error envelope."""
    return _http_error(web.HTTPForbidden, "forbidden", message)


def _apply_security_headers(request: Request, response) -> None:
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = (
        "max-age=31536000; includeSubDomains"
    )
    response.headers["Cache-Control"] = "no-store"

    if request.path.startswith("/webhook/"):
        response.headers["Allow"] = "POST"


@web.middleware
async def security_headers_middleware(request: Request, handler):
    """Add security headers to all responses, including raised HTTP errors."""
    try:
        response = await handler(request)
    except web.HTTPException as e:
        _apply_security_headers(request, e)
        raise

    _apply_security_headers(request, response)
    return response


@web.middleware
async def identity_middleware(request: Request, handler):
    """
    Attach the acting user's ID to the request.

    The identity collaborator (gateway or session layer) in front of this
    service authenticates the caller and sets the header.
    """
    raw = request.headers.get(USER_ID_HEADER)
    user_id = coerce_id(raw)
    if raw is not None and user_id is None:
        return json_error(401, "unauthenticated", f"Invalid {USER_ID_HEADER} header")

    request["user_id"] = user_id
    return await handler(request)


@web.middleware
async def error_middleware(request: Request, handler):
    """
    Map domain errors to HTTP responses.

    Client-caused errors keep distinct codes; storage and unexpected errors
    become a generic 500 without internal details.
    """
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except InvalidInputError as e:
        return json_error(400, "invalid_input", str(e))
    except SlotUnavailableError as e:
        return json_error(409, "slot_unavailable", str(e))
    except InvalidStatusError as e:
        return json_error(422, "invalid_status", str(e))
    except NotFoundError as e:
        return json_error(404, "not_found", str(e))
    except PaymentError as e:
        logger.warning(f"Payment failed on {request.method} {request.path}: {e}")
        return json_error(402, "payment_failed", str(e))
    except StorageError as e:
        logger.error(
            f"Storage failure on {request.method} {request.path}: {e}", exc_info=True
        )
        return json_error(500, "internal_error", GENERIC_ERROR_MESSAGE)
    except Exception as e:
        logger.error(
            f"Unexpected error on {request.method} {request.path}: {e}", exc_info=True
        )
        return json_error(500, "internal_error", GENERIC_ERROR_MESSAGE)
