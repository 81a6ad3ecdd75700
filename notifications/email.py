"""
Email notifier for appointment, payment and refund confirmations.

Messages go out over SMTP from a worker thread so the event loop never blocks.
Every public method reports delivery as a bool and never raises.
"""

import asyncio
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

from config import settings
from models.appointment import AppointmentDetails
from notifications.templates import (
    appointment_confirmation_email,
    payment_confirmation_email,
    refund_confirmation_email,
)
from utils.datetime_utils import clinic_timezone, utc_now
from utils.logging_config import setup_logging
from utils.validation import validate_email

logger = setup_logging(name=__name__, log_file="notifications.log", log_dir="logs")

SMTP_TIMEOUT_SECONDS = 30


class EmailNotifier:
    """Sends clinic emails for a given appointment."""

    def __init__(self, db):
        self.db = db

    async def send_appointment_confirmation(self, appointment_id: int) -> bool:
        """Email the owner that their appointment was booked."""
        details = await self._load(appointment_id)
        if details is None:
            return False
        subject, html_content = appointment_confirmation_email(details)
        return await self.send_email(details.email, subject, html_content)

    async def send_payment_confirmation(self, appointment_id: int, payment_id: str) -> bool:
        """Email the owner a receipt for their payment."""
        details = await self._load(appointment_id)
        if details is None:
            return False
        subject, html_content = payment_confirmation_email(
            details,
            payment_id,
            utc_now().astimezone(clinic_timezone()),
            settings.payment_currency,
        )
        return await self.send_email(details.email, subject, html_content)

    async def send_refund_confirmation(self, appointment_id: int, refund_id: str) -> bool:
        """Email the owner that their payment was refunded."""
        details = await self._load(appointment_id)
        if details is None:
            return False
        subject, html_content = refund_confirmation_email(
            details,
            refund_id,
            utc_now().astimezone(clinic_timezone()),
            settings.payment_currency,
        )
        return await self.send_email(details.email, subject, html_content)

    async def _load(self, appointment_id: int) -> Optional[AppointmentDetails]:
        try:
            details = await self.db.get_appointment_details(appointment_id)
        except Exception as e:
            logger.error(
                f"Could not load appointment {appointment_id} for email: {e}",
                exc_info=True,
            )
            return None

        if details is None:
            logger.warning(f"Appointment {appointment_id} not found, email skipped")
        return details

    async def send_email(self, to: Optional[str], subject: str, html_content: str) -> bool:
        """
        Send an HTML email.

        Returns:
            True if the SMTP server accepted the message, False otherwise
        """
        if not to or not validate_email(to):
            logger.warning(f"Invalid recipient address, email '{subject}' skipped")
            return False

        if not settings.smtp_host:
            logger.warning(f"SMTP not configured, email '{subject}' skipped")
            return False

        try:
            await asyncio.to_thread(self._send_via_smtp, to, subject, html_content)
        except Exception as e:
            logger.error(f"Failed to send email '{subject}' to {to}: {e}", exc_info=True)
            return False

        logger.info(f"Email '{subject}' sent to {to}")
        return True

    def _send_via_smtp(self, to: str, subject: str, html_content: str) -> None:
        from_address = formataddr((settings.from_name, settings.from_email))

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_address
        msg["To"] = to
        msg["Reply-To"] = settings.from_email
        msg.attach(MIMEText(html_content, "html", "utf-8"))

        if settings.smtp_port == 465:
            context = ssl.create_default_context()
            server = smtplib.SMTP_SSL(
                settings.smtp_host,
                settings.smtp_port,
                context=context,
                timeout=SMTP_TIMEOUT_SECONDS,
            )
        else:
            server = smtplib.SMTP(
                settings.smtp_host, settings.smtp_port, timeout=SMTP_TIMEOUT_SECONDS
            )
            if settings.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())

        try:
            if settings.smtp_user:
                server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to], msg.as_string())
        finally:
            server.quit()
