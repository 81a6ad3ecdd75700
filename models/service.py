"""Service models for clinic treatments."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class Service(BaseModel):
    """Clinic service (consultation, vaccination, surgery, ...)."""

    id: int
    name: str
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, description="Price in the clinic currency")

    class Config:
        json_schema_extra = {
            "example": {
                "id": 3,
                "name": "Vaccination",
                "description": "Annual booster vaccination",
                "price": "45.00",
            }
        }
