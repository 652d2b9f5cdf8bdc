from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from booking_core.models.booking_requests import ServiceType
from booking_core.utils.constants import MAX_BOOKING_DAYS
from booking_core.utils.datetime_normaliser import parse_calendar_date


class CreateBookingRequest(BaseModel):
    vendor_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(min_length=10, max_length=10)
    venue: str = Field(min_length=1)
    service_type: ServiceType
    package_id: str = Field(min_length=1)
    customizations: List[str] = Field(default_factory=list)
    message: str = ""
    starting_date: date
    number_of_days: int = Field(ge=1, le=MAX_BOOKING_DAYS)
    total_price: Decimal = Field(ge=0)

    @field_validator("starting_date", mode="before")
    @classmethod
    def parse_starting_date(cls, v):
        if isinstance(v, str):
            return parse_calendar_date(v)
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str):
        if not v.isdigit():
            raise ValueError("Invalid phone number")
        return v

    @model_validator(mode="after")
    def validate_starting_date(self):
        today = datetime.now(timezone.utc).date()
        if self.starting_date <= today:
            raise ValueError("starting_date must be in the future")
        return self


class RespondToRequest(BaseModel):
    action: Literal["accept", "reject"]
    rejection_reason: Optional[str] = None

    @model_validator(mode="after")
    def require_reason_on_reject(self):
        if self.action == "reject" and not (self.rejection_reason or "").strip():
            raise ValueError("rejection_reason is required when rejecting")
        return self


class PaymentConfirmation(BaseModel):
    booking_id: str = Field(min_length=1)
    amount_paid: Decimal = Field(gt=0)
    payment_id: str = Field(min_length=1)


class CancelBookingRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
