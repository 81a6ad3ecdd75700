"""Payment processing with Stripe."""

from .stripe import (
    create_payment_intent,
    get_payment_history,
    get_payment_intent,
    handle_webhook,
    process_appointment_payment,
    refund_payment,
)

__all__ = [
    "create_payment_intent",
    "get_payment_history",
    "get_payment_intent",
    "handle_webhook",
    "process_appointment_payment",
    "refund_payment",
]
