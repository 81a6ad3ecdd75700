"""
Stripe webhook endpoint and service health check.

- Webhook signature verification
- Idempotency handling (duplicate event IDs are acknowledged, not reprocessed)
- Request size and payload validation
- Metrics exposed on /health
"""

import json
import time
from collections import deque
from typing import Dict, Optional

import stripe
from aiohttp import web
from aiohttp.web import Request, Response
from stripe import SignatureVerificationError

from api.keys import DB_KEY
from config import settings
from notifications import get_dispatcher
from payments import handle_webhook
from utils.exceptions import ValidationError, WebhookVerificationError
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__, log_file="webhook.log", log_dir="logs")

MAX_REQUEST_BODY_SIZE = 1024 * 1024  # 1MB
_MAX_EVENT_HISTORY = 1000  # Keep last 1000 events for metrics
_EVENT_ID_CLEANUP_INTERVAL = 3600  # 1 hour in seconds
_EVENT_ID_MAX_AGE = 86400  # 24 hours - max age for event ID cache

_processed_events: deque = deque(maxlen=_MAX_EVENT_HISTORY)
_processed_event_ids: Dict[str, float] = {}  # event_id -> timestamp
_last_cleanup_time = time.time()

_health_metrics = {
    "total_events": 0,
    "successful_events": 0,
    "failed_events": 0,
    "verification_failures": 0,
    "validation_failures": 0,
    "duplicate_events": 0,
    "start_time": time.time(),
}


def _cleanup_old_event_ids() -> None:
    """Drop idempotency entries older than _EVENT_ID_MAX_AGE (at most once per interval)."""
    global _last_cleanup_time
    current_time = time.time()

    if current_time - _last_cleanup_time < _EVENT_ID_CLEANUP_INTERVAL:
        return

    cutoff_time = current_time - _EVENT_ID_MAX_AGE
    expired_ids = [
        event_id
        for event_id, timestamp in _processed_event_ids.items()
        if timestamp < cutoff_time
    ]
    for event_id in expired_ids:
        _processed_event_ids.pop(event_id, None)

    _last_cleanup_time = current_time
    if expired_ids:
        logger.debug(f"Cleaned up {len(expired_ids)} expired event IDs")


def _verify_webhook_signature(payload: bytes, signature: Optional[str]) -> Dict:
    """
    Verify Stripe webhook signature.

    Args:
        payload: Raw request body bytes
        signature: Stripe-Signature header value

    Returns:
        Parsed event data

    Raises:
        WebhookVerificationError: If signature verification fails
        ValidationError: If no secret is configured outside test mode
    """
    if not settings.stripe_webhook_secret:
        if settings.stripe_secret_key.startswith("sk_test_"):
            logger.warning(
                "STRIPE_WEBHOOK_SECRET not set - skipping signature verification. "
                "This is insecure and should only be used in development."
            )
            try:
                return json.loads(payload.decode("utf-8"))
            except (ValueError, UnicodeDecodeError) as e:
                raise ValidationError(f"Invalid JSON payload: {e}") from e
        raise ValidationError(
            "Stripe webhook secret is required for production webhook verification"
        )

    if not signature:
        raise WebhookVerificationError("Missing Stripe-Signature header")

    try:
        return stripe.Webhook.construct_event(
            payload, signature, settings.stripe_webhook_secret
        )
    except ValueError as e:
        raise WebhookVerificationError(f"Invalid payload: {e}") from e
    except SignatureVerificationError as e:
        raise WebhookVerificationError(f"Invalid signature: {e}") from e


def _validate_webhook_payload(payload: Dict) -> None:
    """
    Validate webhook payload structure.

    Raises:
        ValidationError: If payload structure is invalid
    """
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")

    for field in ("id", "type"):
        value = payload.get(field)
        if not isinstance(value, str) or not value:
            raise ValidationError(f"Webhook '{field}' must be a non-empty string")

    if not isinstance(payload.get("data"), dict):
        raise ValidationError("Webhook payload 'data' field must be an object")


def _check_and_mark_idempotency(event_id: str) -> bool:
    """
    Check if an event was already processed and mark it if not.

    Returns:
        True if event was already processed, False if newly marked
    """
    _cleanup_old_event_ids()

    if event_id in _processed_event_ids:
        return True

    _processed_event_ids[event_id] = time.time()
    return False


def _error(status: int, error: str, message: str) -> Response:
    return web.json_response(
        {"status": "error", "error": error, "message": message}, status=status
    )


async def stripe_webhook_handler(request: Request) -> Response:
    """Handle a Stripe webhook event."""
    event_id: Optional[str] = None
    event_type: Optional[str] = None

    try:
        raw_body = await request.read()

        if len(raw_body) > MAX_REQUEST_BODY_SIZE:
            logger.warning(f"Request body too large: {len(raw_body)} bytes")
            _health_metrics["validation_failures"] += 1
            return _error(
                413,
                "request_too_large",
                f"Request body exceeds maximum size of {MAX_REQUEST_BODY_SIZE} bytes",
            )

        if not raw_body:
            logger.warning("Received empty webhook payload")
            _health_metrics["validation_failures"] += 1
            return _error(400, "empty_payload", "Empty payload")

        payload = _verify_webhook_signature(raw_body, request.headers.get("Stripe-Signature"))
        _validate_webhook_payload(payload)

        event_id = str(payload["id"])
        event_type = str(payload["type"])
        logger.info(f"Received Stripe webhook: event_id={event_id}, type={event_type}")

        if _check_and_mark_idempotency(event_id):
            _health_metrics["duplicate_events"] += 1
            logger.info(f"Duplicate webhook event {event_id} ({event_type}) ignored")
            return web.json_response(
                {
                    "status": "success",
                    "message": "Event already processed",
                    "event_id": event_id,
                    "event_type": event_type,
                }
            )

        _health_metrics["total_events"] += 1
        try:
            result = await handle_webhook(payload, db=request.app[DB_KEY])
        except Exception:
            # Let Stripe retry this event later
            _processed_event_ids.pop(event_id, None)
            raise

        _processed_events.append(
            {"id": event_id, "type": event_type, "timestamp": time.time()}
        )
        _health_metrics["successful_events"] += 1
        logger.info(f"Processed webhook event_id={event_id}, type={event_type}")

        return web.json_response(
            {
                "status": "success",
                "event_id": event_id,
                "event_type": event_type,
                "result": result,
            }
        )

    except WebhookVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        _health_metrics["verification_failures"] += 1
        return _error(401, "verification_failed", "Invalid webhook signature")

    except ValidationError as e:
        logger.warning(f"Invalid webhook payload: {e}")
        _health_metrics["validation_failures"] += 1
        return _error(400, "validation_failed", str(e))

    except Exception as e:
        logger.error(
            f"Unexpected webhook error (event_id={event_id or 'unknown'}, "
            f"type={event_type or 'unknown'}): {e}",
            exc_info=True,
        )
        _health_metrics["failed_events"] += 1
        return _error(
            500, "processing_failed", "Internal server error while processing webhook"
        )


async def health_check(request: Request) -> Response:
    """Health check with webhook metrics and notification backlog."""
    _cleanup_old_event_ids()

    uptime_hours = (time.time() - _health_metrics["start_time"]) / 3600
    total = _health_metrics["total_events"]
    success_rate = (
        (_health_metrics["successful_events"] / total * 100) if total > 0 else 0.0
    )

    return web.json_response(
        {
            "status": "ok",
            "service": "pdsa-clinic-booking",
            "timestamp": time.time(),
            "uptime_hours": round(uptime_hours, 2),
            "pending_notifications": get_dispatcher().pending,
            "metrics": {
                "total_events": total,
                "successful_events": _health_metrics["successful_events"],
                "failed_events": _health_metrics["failed_events"],
                "verification_failures": _health_metrics["verification_failures"],
                "validation_failures": _health_metrics["validation_failures"],
                "duplicate_events": _health_metrics["duplicate_events"],
                "success_rate_percent": round(success_rate, 2),
                "recent_events_count": len(_processed_events),
                "unique_event_ids_tracked": len(_processed_event_ids),
            },
            "configuration": {
                "webhook_secret_configured": bool(settings.stripe_webhook_secret),
                "max_request_size_bytes": MAX_REQUEST_BODY_SIZE,
            },
        }
    )


def register_webhook_routes(app: web.Application) -> None:
    """Attach the Stripe webhook and health routes."""
    app.router.add_post("/webhook/stripe", stripe_webhook_handler)
    app.router.add_get("/health", health_check)
