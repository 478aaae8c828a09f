"""Domain enums for the booking flow engine."""

from enum import Enum


class RuleType(str, Enum):
    """Validation rule kinds."""

    REQUIRED = "required"
    EMAIL = "email"
    MIN_LENGTH = "min_length"
    MAX_LENGTH = "max_length"
    PATTERN = "pattern"
    NUMBER = "number"
    PHONE = "phone"
    URL = "url"
    DATE = "date"
    MATCHES = "matches"
    CUSTOM = "custom"


class WizardStep(str, Enum):
    """Booking wizard steps, declared in flow order."""

    DATETIME = "datetime"
    GUESTS = "guests"
    DETAILS = "details"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"

    @property
    def label(self) -> str:
        return _STEP_LABELS[self]


_STEP_LABELS = {
    WizardStep.DATETIME: "Date & time",
    WizardStep.GUESTS: "Guests",
    WizardStep.DETAILS: "Details",
    WizardStep.PAYMENT: "Payment",
    WizardStep.CONFIRMATION: "Confirmation",
}


class PricingType(str, Enum):
    """How a service's base price scales."""

    FIXED = "fixed"
    PER_PERSON = "per_person"


class PaymentMethod(str, Enum):
    """Payment methods offered at checkout."""

    CARD = "card"
    CASH = "cash"


class ReservationStatus(str, Enum):
    """Reservation status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class RefreshArea(str, Enum):
    """Independently refreshable data areas."""

    RESERVATIONS = "reservations"
    NOTIFICATIONS = "notifications"
    DASHBOARD = "dashboard"
    PAYMENTS = "payments"
    RECEIPTS = "receipts"

    @property
    def label(self) -> str:
        return _AREA_LABELS[self]


_AREA_LABELS = {
    RefreshArea.RESERVATIONS: "reservations",
    RefreshArea.NOTIFICATIONS: "notifications",
    RefreshArea.DASHBOARD: "dashboard",
    RefreshArea.PAYMENTS: "payments",
    RefreshArea.RECEIPTS: "receipts",
}


class SettlementStatus(str, Enum):
    """Outcome of an awaited operation that was allowed to fail."""

    FULFILLED = "fulfilled"
    REJECTED = "rejected"
