"""
Multi-step booking wizard.
Walks a guest through date/time, party size, contact details and payment,
then creates the reservation and refreshes the user's data.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from core.booking_config import BookingRules, get_booking_rules
from core.logging import LogContext
from core.settings import settings
from core.utils_datetime import (
    combine_local,
    format_price,
    format_time_slot,
    get_current_datetime,
    parse_date_value,
    parse_time_value,
)
from domain.enums import PaymentMethod, PricingType, WizardStep
from domain.models import (
    BookingConfirmation,
    ContactInfo,
    PriceBreakdown,
    Reservation,
    ReservationCreate,
    ServiceInfo,
)
from services.form_presets import guest_details_fields
from services.form_validation import FormValidationEngine, compute_form_errors
from services.refresh_coordinator import RefreshCoordinator, RefreshOptions


logger = logging.getLogger(__name__)

STEP_SEQUENCE = tuple(WizardStep)
LAST_ACTIONABLE_STEP = WizardStep.PAYMENT
CENTS = Decimal("0.01")

CreateReservation = Callable[[ReservationCreate], Awaitable[Union[Reservation, Mapping[str, Any]]]]
CheckAvailability = Callable[[ReservationCreate], Awaitable[bool]]


class SlotUnavailableError(Exception):
    """Raised when the selected slot was taken before the booking went through."""
    pass


class ReservationSubmissionError(Exception):
    """A failed reservation attempt, carrying the message shown to the guest."""
    pass


class BookingDraft(BaseModel):
    """Cross-step booking data accumulated before submission."""

    selected_date: Optional[date] = None
    selected_time: Optional[time] = None
    guests: int = 2
    payment_method: Optional[PaymentMethod] = PaymentMethod.CARD

    model_config = ConfigDict(validate_assignment=True)


@dataclass(frozen=True)
class StepGate:
    """Whether a step may be left forward, and why not."""
    allowed: bool
    message: Optional[str] = None


# ============================================================================
# Pure helpers
# ============================================================================

def calculate_price(
    base_price: Union[Decimal, float, int, str],
    pricing_type: PricingType,
    guests: int,
    tax_rate: Union[Decimal, float, str],
    currency: Optional[str] = None
) -> PriceBreakdown:
    """
    Derive subtotal, tax and total.

    The unit price is multiplied by the guest count only for per-person
    pricing. Amounts are rounded half-up to cents.
    """
    unit_price = Decimal(str(base_price))
    rate = Decimal(str(tax_rate))

    subtotal = unit_price * guests if pricing_type == PricingType.PER_PERSON else unit_price
    subtotal = subtotal.quantize(CENTS, rounding=ROUND_HALF_UP)
    tax = (subtotal * rate).quantize(CENTS, rounding=ROUND_HALF_UP)

    return PriceBreakdown(
        unit_price=unit_price,
        guests=guests,
        subtotal=subtotal,
        tax_rate=rate,
        tax=tax,
        total=subtotal + tax,
        currency=currency or settings.currency,
    )


def build_confirmation(
    reservation: Reservation,
    guests: int,
    special_requests: Optional[str],
    now: datetime,
    approval_threshold: int = 8
) -> BookingConfirmation:
    """
    Build what the confirmation step shows for a created reservation.

    Large parties and bookings with special requests wait for the venue
    to approve them; most are confirmed within the hour.
    """
    stamp = str(int(now.timestamp() * 1000))[-6:]
    confirmation_number = f"RES-{stamp}-{reservation.id[-4:].upper()}"
    return BookingConfirmation(
        reservation_id=reservation.id,
        confirmation_number=confirmation_number,
        estimated_confirmation_time=now + timedelta(hours=1),
        requires_approval=guests > approval_threshold or bool(special_requests),
    )


def calendar_dates(today: date, days: int = 30) -> List[date]:
    """Selectable dates starting today."""
    return [today + timedelta(days=offset) for offset in range(days)]


def available_time_slots(
    day: date,
    now: datetime,
    rules: Optional[BookingRules] = None
) -> List[time]:
    """
    Slot start times offered for a day.

    Slots already in the past are dropped when ``day`` is today.
    """
    rules = rules or get_booking_rules()
    slots = rules.time_slots()
    local_now = now.astimezone(rules.tz)
    if day != local_now.date():
        return slots
    return [slot for slot in slots if combine_local(day, slot, rules.tz) > local_now]


# ============================================================================
# Wizard
# ============================================================================

class BookingWizard:
    """
    Step-sequenced booking controller.

    Forward moves are gated per step, the price is re-derived from the
    draft on every read, and the reservation is created at most once per
    submit.
    """

    def __init__(
        self,
        service: ServiceInfo,
        create_reservation: CreateReservation,
        refresh_coordinator: Optional[RefreshCoordinator] = None,
        check_availability: Optional[CheckAvailability] = None,
        rules: Optional[BookingRules] = None,
        clock: Callable[[], datetime] = get_current_datetime,
        contact_defaults: Optional[Mapping[str, Any]] = None,
        refresh_options: Optional[RefreshOptions] = None,
    ):
        """
        Initialize the wizard.

        Args:
            service: Service being booked
            create_reservation: Async reservation-creation operation
            refresh_coordinator: Refreshes user data after a successful booking
            check_availability: Optional async slot check run right before creation
            rules: Booking rules (defaults to the configured ones)
            clock: Returns the current timezone-aware datetime
            contact_defaults: Prefill for the details form (e.g. from the user profile)
            refresh_options: Areas to refresh after booking (all by default)
        """
        self.service = service
        self.rules = rules or get_booking_rules()
        self._create_reservation = create_reservation
        self._refresh_coordinator = refresh_coordinator
        self._check_availability = check_availability
        self._refresh_options = refresh_options or RefreshOptions()
        self._clock = clock

        initial_contact = {
            "firstName": "",
            "lastName": "",
            "email": "",
            "phone": "",
            "specialRequests": "",
        }
        initial_contact.update(contact_defaults or {})
        self.details_form = FormValidationEngine(
            guest_details_fields(),
            initial_values=initial_contact,
            validate_on_change=settings.validate_on_change,
            validate_on_blur=settings.validate_on_blur,
        )

        self.draft = BookingDraft()
        self._current_index = 0
        self._is_submitting = False
        self.step_error: Optional[str] = None
        self.submit_error: Optional[ReservationSubmissionError] = None
        self.reservation: Optional[Reservation] = None
        self.confirmation: Optional[BookingConfirmation] = None
        self.submitted_request: Optional[ReservationCreate] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def current_step_index(self) -> int:
        return self._current_index

    @property
    def current_step(self) -> WizardStep:
        return STEP_SEQUENCE[self._current_index]

    @property
    def completed_steps(self) -> List[WizardStep]:
        return list(STEP_SEQUENCE[:self._current_index])

    @property
    def is_submitting(self) -> bool:
        return self._is_submitting

    @property
    def is_complete(self) -> bool:
        return self.current_step == WizardStep.CONFIRMATION

    @property
    def max_guests(self) -> int:
        return self.service.max_capacity or self.rules.default_max_guests

    @property
    def price(self) -> PriceBreakdown:
        """Price for the current draft, recomputed on every access."""
        base_price = self.service.base_price
        if base_price is None:
            base_price = self.rules.default_base_price
        return calculate_price(
            base_price,
            self.service.pricing_type,
            self.draft.guests,
            self.rules.tax_rate,
            self.rules.currency,
        )

    @property
    def selected_moment(self) -> Optional[datetime]:
        return combine_local(self.draft.selected_date, self.draft.selected_time, self.rules.tz)

    # ------------------------------------------------------------------
    # Draft edits
    # ------------------------------------------------------------------

    def select_date(self, value: Union[date, str]) -> None:
        parsed = parse_date_value(value)
        if parsed is None:
            raise ValueError(f"Invalid date: {value!r}")
        self.draft.selected_date = parsed

    def select_time(self, value: Union[time, str]) -> None:
        parsed = parse_time_value(value)
        if parsed is None:
            raise ValueError(f"Invalid time: {value!r}")
        if not self.rules.is_valid_time_slot(parsed):
            raise ValueError(f"{format_time_slot(parsed)} is not a bookable time slot")
        self.draft.selected_time = parsed

    def set_guests(self, guests: int) -> None:
        self.draft.guests = guests

    def set_payment_method(self, method: Union[PaymentMethod, str, None]) -> None:
        self.draft.payment_method = method

    def set_contact_value(self, field_name: str, value: Any) -> None:
        self.details_form.set_value(field_name, value)

    def set_special_requests(self, text: str) -> None:
        self.details_form.set_value("specialRequests", text)

    def available_dates(self) -> List[date]:
        today = self._clock().astimezone(self.rules.tz).date()
        return calendar_dates(today, self.rules.calendar_days)

    def available_times(self, day: Optional[date] = None) -> List[time]:
        day = day or self.draft.selected_date
        if day is None:
            return []
        return available_time_slots(day, self._clock(), self.rules)

    # ------------------------------------------------------------------
    # Step gates
    # ------------------------------------------------------------------

    def _check_datetime(self) -> StepGate:
        moment = self.selected_moment
        if moment is None:
            return StepGate(False, "Select a date and time")

        now = self._clock()
        if moment <= now:
            return StepGate(False, "The date and time must be in the future")
        if moment > self.rules.horizon_end(now):
            return StepGate(
                False,
                f"Bookings cannot be made more than {self.rules.horizon_months} months in advance"
            )
        return StepGate(True)

    def _check_guests(self) -> StepGate:
        guests = self.draft.guests
        if guests < self.rules.min_guests:
            return StepGate(False, f"At least {self.rules.min_guests} guest is required")
        if guests > self.max_guests:
            return StepGate(False, f"A maximum of {self.max_guests} guests is allowed")
        return StepGate(True)

    def _check_details(self) -> StepGate:
        # Rules are re-run on the current values so untouched empty fields still block
        pending = compute_form_errors(self.details_form.fields, self.details_form.state.values)
        errors = self.details_form.errors or pending
        if errors:
            return StepGate(False, errors[0].message)
        return StepGate(True)

    def _check_payment(self) -> StepGate:
        method = self.draft.payment_method
        if method is None or method.value not in self.rules.payment_methods:
            return StepGate(False, "Select a payment method")
        return StepGate(True)

    def check_step(self, step: Optional[WizardStep] = None) -> StepGate:
        """Evaluate the gate guarding the exit of ``step`` (current step by default)."""
        step = step or self.current_step
        if step == WizardStep.DATETIME:
            return self._check_datetime()
        if step == WizardStep.GUESTS:
            return self._check_guests()
        if step == WizardStep.DETAILS:
            return self._check_details()
        if step == WizardStep.PAYMENT:
            return self._check_payment()
        return StepGate(False, "The booking is already complete")

    def can_advance(self, step: Optional[WizardStep] = None) -> bool:
        return self.check_step(step).allowed

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def next(self) -> bool:
        """
        Move to the following step if the current one is satisfied.

        The payment step is left only through submit().

        Returns:
            True when the step changed
        """
        step = self.current_step
        if step == WizardStep.DETAILS:
            self.details_form.validate_form()

        gate = self.check_step(step)
        if not gate.allowed:
            self.step_error = gate.message
            logger.debug(f"Cannot leave {step.value}: {gate.message}")
            return False

        if step == LAST_ACTIONABLE_STEP:
            self.step_error = "Confirm the booking to continue"
            return False

        self._current_index += 1
        self.step_error = None
        logger.debug(f"Wizard advanced to {self.current_step.value}")
        return True

    def previous(self) -> bool:
        """Go back one step. No-op on the first step and once the booking is done."""
        if self._current_index == 0 or self.is_complete:
            return False
        self._current_index -= 1
        self.step_error = None
        return True

    async def handle_continue(self) -> bool:
        """Single continue action: advance, or submit from the payment step."""
        if self.current_step == LAST_ACTIONABLE_STEP:
            return await self.submit() is not None
        return self.next()

    def reset(self) -> bool:
        """Start the booking over. Refused while a submission is in flight."""
        if self._is_submitting:
            return False
        self.draft = BookingDraft()
        self.details_form.reset_form()
        self._current_index = 0
        self.step_error = None
        self.submit_error = None
        self.reservation = None
        self.confirmation = None
        self.submitted_request = None
        return True

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def contact_info(self) -> ContactInfo:
        values = self.details_form.values
        return ContactInfo(
            first_name=values.get("firstName") or "",
            last_name=values.get("lastName") or "",
            email=values.get("email") or "",
            phone=values.get("phone") or "",
        )

    def build_reservation_request(self) -> ReservationCreate:
        """Assemble the creation payload from the draft and the details form."""
        return ReservationCreate(
            service_id=self.service.id,
            venue_id=self.service.venue_id,
            date=self.draft.selected_date,
            time=self.draft.selected_time,
            guests=self.draft.guests,
            contact=self.contact_info(),
            payment_method=self.draft.payment_method,
            total_amount=self.price.total,
            special_requests=self.details_form.values.get("specialRequests"),
        )

    def _first_blocking_gate(self) -> Optional[StepGate]:
        self.details_form.validate_form()
        for step in STEP_SEQUENCE:
            if step == WizardStep.CONFIRMATION:
                break
            gate = self.check_step(step)
            if not gate.allowed:
                return gate
        return None

    async def submit(self) -> Optional[Reservation]:
        """
        Create the reservation from the accumulated draft.

        Only allowed from the payment step. Rejected while another
        submission is in flight or after the booking is complete. On failure the wizard stays on the current step and
        ``submit_error`` holds the message, so the guest can retry.

        Returns:
            The created reservation, or None if nothing was created
        """
        if self._is_submitting:
            logger.warning("Reservation submit ignored: a submission is already in progress")
            return None
        if self.is_complete:
            logger.warning("Reservation submit ignored: booking already completed")
            return None
        if self.current_step != LAST_ACTIONABLE_STEP:
            self.step_error = f"Complete the {self.current_step.label.lower()} step first"
            return None

        self._is_submitting = True
        self.submit_error = None
        try:
            blocking = self._first_blocking_gate()
            if blocking is not None:
                self.step_error = blocking.message
                return None

            request = self.build_reservation_request()
            if self._check_availability is not None:
                if not await self._check_availability(request):
                    raise SlotUnavailableError("Selected time slot is no longer available")

            logger.info(
                f"Creating reservation for service {request.service_id} on "
                f"{request.date.isoformat()} {format_time_slot(request.time)} ({request.guests} guests)"
            )
            result = await self._create_reservation(request)
            reservation = result if isinstance(result, Reservation) else Reservation.model_validate(result)
        except Exception as e:
            message = str(e) or "Could not create the reservation"
            self.submit_error = ReservationSubmissionError(message)
            self.submit_error.__cause__ = e
            logger.error(f"Error creating reservation: {message}", exc_info=True)
            return None
        finally:
            self._is_submitting = False

        self._complete(reservation, request)
        await self._refresh_after_booking()
        return reservation

    def _complete(self, reservation: Reservation, request: ReservationCreate) -> None:
        self.reservation = reservation
        self.submitted_request = request
        self.confirmation = build_confirmation(
            reservation,
            guests=request.guests,
            special_requests=request.special_requests,
            now=self._clock(),
            approval_threshold=self.rules.approval_threshold,
        )
        self._current_index = STEP_SEQUENCE.index(WizardStep.CONFIRMATION)
        self.step_error = None

        # The draft ends with the booking
        self.draft = BookingDraft()
        self.details_form.reset_form()
        LogContext(
            logger,
            reservation_id=reservation.id,
            confirmation_number=self.confirmation.confirmation_number,
        ).log("info", f"Reservation {reservation.id} created")

    async def _refresh_after_booking(self) -> None:
        if self._refresh_coordinator is None:
            return
        try:
            await self._refresh_coordinator.refresh_user_data(self._refresh_options)
        except Exception as e:
            # The booking already exists; stale screens are not worth surfacing
            logger.error(f"Post-booking refresh failed: {e}")

    def summary(self) -> Dict[str, Any]:
        """Snapshot for the step header and order summary."""
        price = self.price
        return {
            "step": self.current_step.value,
            "step_label": self.current_step.label,
            "step_index": self._current_index,
            "total_steps": len(STEP_SEQUENCE),
            "price": price,
            "total_display": format_price(price.total, price.currency),
            "selected_time": format_time_slot(self.draft.selected_time) if self.draft.selected_time else None,
            "step_error": self.step_error,
            "submit_error": str(self.submit_error) if self.submit_error else None,
        }
