"""Payment and refund records."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class Payment(BaseModel):
    """Payment recorded against an appointment."""

    id: Optional[int] = None
    user_id: int
    appointment_id: int
    amount: Decimal = Field(..., ge=0)
    currency: str = "gbp"
    payment_intent_id: str
    status: str = Field(..., description="Stripe intent status, or 'refunded'")
    created_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    # Joined from the appointment for payment history
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = None
    service_name: Optional[str] = None


class PaymentResult(BaseModel):
    """Outcome of paying for an appointment."""

    status: str
    payment_id: str
    amount: Decimal
