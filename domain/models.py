"""Domain models using Pydantic v2 for the booking flow engine."""

import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator

from .enums import PaymentMethod, PricingType, ReservationStatus


class ServiceInfo(BaseModel):
    """The bookable service a wizard is opened for."""

    id: str = Field(..., min_length=1, description="Service identifier")
    venue_id: str = Field(..., min_length=1, description="Venue offering the service")
    name: str = Field(default="", max_length=200)
    base_price: Optional[Decimal] = Field(None, ge=0, description="Unit price before tax")
    pricing_type: PricingType = PricingType.FIXED
    max_capacity: Optional[int] = Field(None, ge=1, description="Maximum guests per booking")

    model_config = ConfigDict(
        str_strip_whitespace=True,
        from_attributes=True,
    )


class ContactInfo(BaseModel):
    """Guest contact details collected on the details step."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=254)
    phone: str = Field(..., max_length=32)

    model_config = ConfigDict(str_strip_whitespace=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PriceBreakdown(BaseModel):
    """Subtotal, tax and total derived from a booking draft."""

    unit_price: Decimal
    guests: int
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    currency: str = "MXN"

    model_config = ConfigDict(frozen=True)


class ReservationCreate(BaseModel):
    """Payload for the external reservation-creation operation."""

    service_id: str = Field(..., min_length=1)
    venue_id: str = Field(..., min_length=1)
    date: dt.date
    time: dt.time
    guests: int = Field(..., ge=1)
    contact: ContactInfo
    payment_method: PaymentMethod
    total_amount: Decimal = Field(..., ge=0)
    special_requests: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("special_requests", mode="before")
    @classmethod
    def empty_requests_to_none(cls, v):
        """Blank special requests are sent as absent."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class Reservation(BaseModel):
    """Reservation returned by the backend after creation."""

    id: str = Field(..., min_length=1)
    status: ReservationStatus = ReservationStatus.PENDING
    service_id: Optional[str] = None
    venue_id: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    guests: int = Field(default=1, ge=1)
    total_amount: Optional[Decimal] = None
    special_requests: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BookingConfirmation(BaseModel):
    """What the confirmation step shows once a reservation exists."""

    reservation_id: str
    confirmation_number: str
    estimated_confirmation_time: dt.datetime
    requires_approval: bool

    model_config = ConfigDict(frozen=True)
