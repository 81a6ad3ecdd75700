"""
Stripe payment integration for appointment payments and refunds.

The payment processor is the only component that sets an appointment to
``paid``, and only from ``confirmed``; a refund cancels the appointment.
"""

import asyncio
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Optional, Type

import stripe
from stripe import PaymentIntent, StripeError

from config import settings
from models.appointment import AppointmentStatus
from models.payment import Payment, PaymentResult
from notifications.dispatcher import get_dispatcher
from utils.constants import MAX_PAYMENT_METHOD_ID_LENGTH, MINOR_UNITS_PER_MAJOR
from utils.exceptions import (
    InvalidInputError,
    NotFoundError,
    PaymentError,
    PaymentIntentError,
    RefundError,
    StorageError,
)
from utils.logging_config import setup_logging
from utils.validation import validate_positive_id

logger = setup_logging(name=__name__, log_file="payments.log", log_dir="logs")

# Initialize Stripe
stripe.api_key = settings.stripe_secret_key

# Retry configuration
_MAX_RETRIES = 3
_RETRY_DELAY = 1.0  # seconds
_RETRY_BACKOFF = 2.0  # exponential backoff multiplier


def to_minor_units(amount: Any) -> int:
    """Convert a major-unit amount (e.g. pounds) to Stripe's minor units (pence)."""
    value = Decimal(str(amount)) * MINOR_UNITS_PER_MAJOR
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


async def _call_with_retries(
    func: Callable[..., Any],
    label: str,
    error_cls: Type[PaymentError],
    params: Dict[str, Any],
) -> Any:
    """
    Run a blocking Stripe call in a worker thread, retrying transient failures.

    Client errors (4xx) are raised immediately; server and network errors are
    retried with exponential backoff. Callers pass an idempotency key so a
    retried request never charges twice.

    Raises:
        error_cls: When the call fails permanently
    """
    delay = _RETRY_DELAY
    last_error: Optional[Exception] = None

    for attempt in range(_MAX_RETRIES):
        try:
            return await asyncio.to_thread(func, **params)
        except StripeError as e:
            last_error = e
            if e.http_status and 400 <= e.http_status < 500:
                logger.error(f"Stripe client error during {label}: {e}")
                raise error_cls(f"Payment processing error: {e.user_message or e}") from e
        except Exception as e:
            last_error = e

        if attempt < _MAX_RETRIES - 1:
            logger.warning(
                f"Stripe error (attempt {attempt + 1}/{_MAX_RETRIES}) during "
                f"{label}: {last_error}. Retrying in {delay}s..."
            )
            await asyncio.sleep(delay)
            delay *= _RETRY_BACKOFF

    logger.error(
        f"Stripe error during {label} after {_MAX_RETRIES} attempts: {last_error}",
        exc_info=last_error,
    )
    raise error_cls(
        f"Payment processing error after {_MAX_RETRIES} attempts"
    ) from last_error


async def create_payment_intent(
    amount: Decimal,
    appointment_id: int,
    user_id: int,
    currency: Optional[str] = None,
    payment_method_id: Optional[str] = None,
    receipt_email: Optional[str] = None,
) -> PaymentIntent:
    """
    Create a Stripe payment intent for an appointment.

    When ``payment_method_id`` is given the intent is confirmed immediately.

    Args:
        amount: Amount in major units (must be positive)
        appointment_id: Appointment being paid for
        user_id: Paying user
        currency: Currency code (default: ``settings.payment_currency``)
        payment_method_id: Card payment method to charge now
        receipt_email: Where Stripe sends its receipt

    Returns:
        Stripe PaymentIntent object

    Raises:
        InvalidInputError: If input validation fails
        PaymentIntentError: If the Stripe call fails
    """
    if amount is None or Decimal(str(amount)) <= 0:
        raise InvalidInputError(f"Invalid amount: {amount} must be positive")

    if not validate_positive_id(appointment_id):
        raise InvalidInputError("Appointment ID is required")

    if not validate_positive_id(user_id):
        raise InvalidInputError(f"Invalid user ID: {user_id}")

    params: Dict[str, Any] = {
        "amount": to_minor_units(amount),
        "currency": currency or settings.payment_currency,
        "metadata": {
            "appointment_id": str(appointment_id),
            "user_id": str(user_id),
        },
        "description": f"Payment for appointment #{appointment_id}",
        "payment_method_types": ["card"],
        "idempotency_key": f"appointment-{appointment_id}-{uuid.uuid4()}",
    }
    if payment_method_id:
        params["payment_method"] = payment_method_id
        params["confirm"] = True
    if receipt_email:
        params["receipt_email"] = receipt_email

    payment_intent = await _call_with_retries(
        stripe.PaymentIntent.create,
        f"payment intent for appointment {appointment_id}",
        PaymentIntentError,
        params,
    )
    logger.info(
        f"Created payment intent {payment_intent.id} for appointment {appointment_id} "
        f"(status={payment_intent.status})"
    )
    return payment_intent


async def get_payment_intent(payment_intent_id: str) -> Optional[PaymentIntent]:
    """
    Get payment intent by ID.

    Returns:
        PaymentIntent object or None if not found or unreachable

    Raises:
        InvalidInputError: If payment_intent_id is empty
    """
    if not payment_intent_id:
        raise InvalidInputError("Payment intent ID is required")

    try:
        return await _call_with_retries(
            stripe.PaymentIntent.retrieve,
            f"retrieving payment intent {payment_intent_id}",
            PaymentIntentError,
            {"id": payment_intent_id},
        )
    except PaymentIntentError as e:
        logger.debug(f"Payment intent {payment_intent_id} unavailable: {e}")
        return None


async def process_appointment_payment(
    appointment_id: int,
    payment_method_id: str,
    user_id: int,
    db=None,
    notifier=None,
) -> PaymentResult:
    """
    Charge the user for a confirmed appointment.

    The payment record and the ``paid`` status are written in one storage
    transaction. A payment confirmation email is sent in the background.

    Raises:
        InvalidInputError: Missing or malformed payment method
        NotFoundError: Appointment missing, not the user's, or not confirmed
        PaymentIntentError: Stripe declined or failed
        StorageError: Payment taken but could not be recorded
    """
    if (
        not payment_method_id
        or not isinstance(payment_method_id, str)
        or len(payment_method_id) > MAX_PAYMENT_METHOD_ID_LENGTH
    ):
        raise InvalidInputError("A valid payment method is required")

    if db is None:
        from db import get_db_client

        db = get_db_client()

    appointment = await db.get_payable_appointment(appointment_id, user_id)
    if not appointment:
        raise NotFoundError("Appointment not found or not eligible for payment")

    currency = settings.payment_currency
    payment_intent = await create_payment_intent(
        amount=appointment.price,
        appointment_id=appointment_id,
        user_id=user_id,
        currency=currency,
        payment_method_id=payment_method_id,
        receipt_email=appointment.email,
    )

    try:
        await db.record_payment(
            user_id=user_id,
            appointment_id=appointment_id,
            amount=appointment.price,
            currency=currency,
            payment_intent_id=payment_intent.id,
            status=payment_intent.status,
        )
    except StorageError:
        logger.error(
            f"Payment intent {payment_intent.id} for appointment {appointment_id} "
            f"was not recorded",
            exc_info=True,
        )
        raise

    if notifier is not None and payment_intent.status == "succeeded":
        get_dispatcher().dispatch(
            notifier.send_payment_confirmation(appointment_id, payment_intent.id),
            f"payment confirmation for appointment {appointment_id}",
        )

    return PaymentResult(
        status=payment_intent.status,
        payment_id=payment_intent.id,
        amount=appointment.price,
    )


async def refund_payment(
    payment_intent_id: str,
    admin_id: int,
    db=None,
    notifier=None,
) -> Dict[str, Any]:
    """
    Refund a succeeded payment in full and cancel its appointment.

    Raises:
        NotFoundError: Payment missing or not in ``succeeded`` status
        RefundError: Stripe refused or failed
        StorageError: Refund issued but could not be recorded
    """
    if not payment_intent_id:
        raise InvalidInputError("Payment intent ID is required")

    if db is None:
        from db import get_db_client

        db = get_db_client()

    payment = await db.get_refundable_payment(payment_intent_id)
    if not payment:
        raise NotFoundError("Payment not found or not eligible for refund")

    refund = await _call_with_retries(
        stripe.Refund.create,
        f"refund of {payment_intent_id}",
        RefundError,
        {
            "payment_intent": payment_intent_id,
            "amount": to_minor_units(payment.amount),
            "idempotency_key": f"refund-{payment_intent_id}",
        },
    )

    try:
        await db.record_refund(payment_intent_id, admin_id, refund.id)
    except StorageError:
        logger.error(
            f"Refund {refund.id} for {payment_intent_id} was not recorded",
            exc_info=True,
        )
        raise

    logger.info(f"Admin {admin_id} refunded {payment_intent_id} (refund {refund.id})")

    if notifier is not None:
        get_dispatcher().dispatch(
            notifier.send_refund_confirmation(payment.appointment_id, refund.id),
            f"refund confirmation for appointment {payment.appointment_id}",
        )

    return {
        "refund_id": refund.id,
        "status": refund.status,
        "amount": payment.amount,
        "appointment_id": payment.appointment_id,
    }


async def get_payment_history(user_id: int, db=None) -> List[Payment]:
    """Get a user's payments with appointment date/time and service, newest first."""
    if not validate_positive_id(user_id):
        raise InvalidInputError("user_id is required")

    if db is None:
        from db import get_db_client

        db = get_db_client()

    return await db.get_payment_history(user_id)


async def handle_webhook(event_data: dict, db=None) -> dict:
    """
    Handle Stripe webhook events.

    Args:
        event_data: Stripe webhook event data

    Returns:
        Response dict
    """
    event_type = event_data.get("type")
    payment_intent = event_data.get("data", {}).get("object")

    if not payment_intent:
        return {"status": "error", "message": "Invalid webhook data"}

    raw_appointment_id = (payment_intent.get("metadata") or {}).get("appointment_id")

    if not raw_appointment_id or not str(raw_appointment_id).isdigit():
        logger.warning("Webhook received without appointment_id")
        return {"status": "ignored", "message": "No appointment_id in metadata"}

    appointment_id = int(raw_appointment_id)

    if db is None:
        from db import get_db_client

        db = get_db_client()

    if event_type == "payment_intent.succeeded":
        payment_intent_id = payment_intent.get("id")
        appointment_status = await db.confirm_payment(payment_intent_id)
        if appointment_status is None:
            logger.warning(
                f"No payment recorded for intent {payment_intent_id} "
                f"(appointment {appointment_id})"
            )
            return {"status": "ignored", "appointment_id": appointment_id}
        if appointment_status != AppointmentStatus.PAID.value:
            # Cancelled or refunded appointments keep their status
            logger.warning(
                f"Payment succeeded for appointment {appointment_id} in status "
                f"{appointment_status}; status left unchanged"
            )
            return {
                "status": "ignored",
                "appointment_id": appointment_id,
                "appointment_status": appointment_status,
            }
        logger.info(f"Payment confirmed for appointment {appointment_id}")
        return {"status": "success", "appointment_id": appointment_id}

    elif event_type == "payment_intent.payment_failed":
        logger.warning(f"Payment failed for appointment {appointment_id}")
        return {"status": "failed", "appointment_id": appointment_id}

    return {"status": "processed", "event_type": event_type}
