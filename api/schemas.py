"""Request bodies accepted by the HTTP API."""

import json
from typing import Optional, Type, TypeVar

from aiohttp.web import Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from utils.exceptions import InvalidInputError

T = TypeVar("T", bound=BaseModel)


class AppointmentRequest(BaseModel):
    """Body of ``POST /appointments``."""

    model_config = ConfigDict(populate_by_name=True)

    pet_id: int = Field(..., alias="petId", gt=0)
    service_id: int = Field(..., alias="serviceId", gt=0)
    date: str
    time: str
    notes: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    """Body of ``PATCH /appointments/{id}/status``."""

    status: str


class PaymentRequest(BaseModel):
    """Body of ``POST /appointments/{id}/payment``."""

    model_config = ConfigDict(populate_by_name=True)

    payment_method_id: str = Field(..., alias="paymentMethodId", min_length=1)


async def parse_body(request: Request, model: Type[T]) -> T:
    """
    Parse and validate a JSON request body.

    Raises:
        InvalidInputError: Body is not JSON or misses required fields
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidInputError("Request body must be valid JSON") from e

    if not isinstance(payload, dict):
        raise InvalidInputError("Request body must be a JSON object")

    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]) for err in e.errors()
        )
        raise InvalidInputError(f"Missing or invalid fields: {fields}") from e
