"""HTML bodies for clinic emails. All interpolated values are escaped."""

from datetime import datetime
from decimal import Decimal
from html import escape
from typing import Optional, Tuple

from models.appointment import AppointmentDetails

CLINIC_NAME = "PDSA Veterinary Clinic"

CURRENCY_SYMBOLS = {"gbp": "£", "eur": "€", "usd": "$"}


def format_amount(amount: Optional[Decimal], currency: str = "gbp") -> str:
    """Format a money amount, e.g. ``£45.00``."""
    symbol = CURRENCY_SYMBOLS.get(currency.lower(), "")
    value = Decimal(amount or 0).quantize(Decimal("0.01"))
    if symbol:
        return f"{symbol}{value:,}"
    return f"{value:,} {currency.upper()}"


def _wrap(title: str, body: str) -> str:
    return (
        "<html>\n<head>\n"
        f"<title>{escape(title)}</title>\n"
        "</head>\n<body>\n"
        f"{body}\n"
        f"<p>Thank you,<br>{CLINIC_NAME}</p>\n"
        "</body>\n</html>\n"
    )


def _appointment_rows(details: AppointmentDetails) -> str:
    return (
        f"<p><strong>Date:</strong> {escape(str(details.appointment_date))}</p>\n"
        f"<p><strong>Time:</strong> {escape(details.appointment_time)}</p>\n"
    )


def appointment_confirmation_email(details: AppointmentDetails) -> Tuple[str, str]:
    """Subject and HTML body confirming a new booking."""
    subject = f"PDSA Appointment Confirmation #{details.id}"
    body = (
        "<h2>Appointment Confirmation</h2>\n"
        f"<p>Dear {escape(details.user_name or 'client')},</p>\n"
        f"<p>Your appointment for {escape(details.pet_name or 'your pet')} "
        "has been scheduled.</p>\n"
        "<h3>Appointment Details</h3>\n"
        f"<p><strong>Service:</strong> {escape(details.service_name or '')}</p>\n"
        f"{_appointment_rows(details)}"
        "<p>Please arrive 10 minutes before your scheduled time.</p>\n"
        "<p>If you need to cancel or reschedule, please contact us at least "
        "24 hours in advance.</p>"
    )
    return subject, _wrap("PDSA Appointment Confirmation", body)


def payment_confirmation_email(
    details: AppointmentDetails,
    payment_id: str,
    paid_at: datetime,
    currency: str = "gbp",
) -> Tuple[str, str]:
    """Subject and HTML body acknowledging a payment."""
    subject = f"PDSA Payment Confirmation #{payment_id}"
    body = (
        "<h2>Payment Confirmation</h2>\n"
        f"<p>Dear {escape(details.user_name or 'client')},</p>\n"
        f"<p>Thank you for your payment for {escape(details.pet_name or 'your pet')}'s "
        "appointment.</p>\n"
        "<h3>Payment Details</h3>\n"
        f"<p><strong>Payment ID:</strong> {escape(payment_id)}</p>\n"
        f"<p><strong>Service:</strong> {escape(details.service_name or '')}</p>\n"
        f"<p><strong>Amount:</strong> {escape(format_amount(details.price, currency))}</p>\n"
        f"<p><strong>Date:</strong> {paid_at.strftime('%d/%m/%Y %H:%M')}</p>\n"
        "<h3>Appointment Details</h3>\n"
        f"{_appointment_rows(details)}"
        "<p>If you have any questions about your payment, please contact our "
        "support team.</p>"
    )
    return subject, _wrap("PDSA Payment Confirmation", body)


def refund_confirmation_email(
    details: AppointmentDetails,
    refund_id: str,
    refunded_at: datetime,
    currency: str = "gbp",
) -> Tuple[str, str]:
    """Subject and HTML body confirming a refund."""
    subject = f"PDSA Refund Confirmation #{refund_id}"
    body = (
        "<h2>Refund Confirmation</h2>\n"
        f"<p>Dear {escape(details.user_name or 'client')},</p>\n"
        f"<p>Your refund for {escape(details.pet_name or 'your pet')}'s appointment "
        "has been processed.</p>\n"
        "<h3>Refund Details</h3>\n"
        f"<p><strong>Refund ID:</strong> {escape(refund_id)}</p>\n"
        f"<p><strong>Service:</strong> {escape(details.service_name or '')}</p>\n"
        f"<p><strong>Amount:</strong> {escape(format_amount(details.price, currency))}</p>\n"
        f"<p><strong>Date:</strong> {refunded_at.strftime('%d/%m/%Y %H:%M')}</p>\n"
        "<p>Please allow 5-10 business days for the refund to appear in your "
        "account.</p>"
    )
    return subject, _wrap("PDSA Refund Confirmation", body)
