"""
Dashboard statistics for clinic administrators.
Figures cover the current clinic-local day.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Optional

from models.appointment import AppointmentStatus
from utils.datetime_utils import clinic_timezone, clinic_today, format_date


async def get_dashboard_stats(db, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Summarize today's activity.

    Args:
        db: Database client
        today: Clinic-local date to report on (defaults to today)

    Returns:
        Dict with appointment count, expected revenue, patient/client totals
        and payments received today
    """
    today = today or clinic_today()

    appointments = await db.get_appointments(day=today)
    today_revenue = sum(
        (
            Decimal(a.price or 0)
            for a in appointments
            if a.status != AppointmentStatus.CANCELLED.value
        ),
        Decimal("0"),
    )

    tz = clinic_timezone()
    start_of_day = datetime.combine(today, time.min, tzinfo=tz)
    payments = await db.get_succeeded_payments_since(start_of_day)
    # The store filters on the lower bound only; drop anything after today
    payments_received = sum(
        (
            p.amount
            for p in payments
            if p.created_at is None or p.created_at.astimezone(tz).date() == today
        ),
        Decimal("0"),
    )

    return {
        "date": format_date(today),
        "today_appointments": len(appointments),
        "today_revenue": str(today_revenue.quantize(Decimal("0.01"))),
        "total_patients": await db.count_rows("pets"),
        "total_clients": await db.count_rows("users"),
        "today_payments_received": str(payments_received.quantize(Decimal("0.01"))),
    }
