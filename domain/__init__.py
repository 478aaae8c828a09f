"""Domain layer for the booking flow engine."""

from .enums import (
    RuleType,
    WizardStep,
    PricingType,
    PaymentMethod,
    ReservationStatus,
    RefreshArea,
    SettlementStatus,
)
from .models import (
    ServiceInfo,
    ContactInfo,
    PriceBreakdown,
    ReservationCreate,
    Reservation,
    BookingConfirmation,
)

__all__ = [
    # Enums
    "RuleType",
    "WizardStep",
    "PricingType",
    "PaymentMethod",
    "ReservationStatus",
    "RefreshArea",
    "SettlementStatus",
    # Models
    "ServiceInfo",
    "ContactInfo",
    "PriceBreakdown",
    "ReservationCreate",
    "Reservation",
    "BookingConfirmation",
]
