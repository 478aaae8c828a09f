"""Pytest configuration and fixtures for booking flow engine tests."""
import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

from core.booking_config import BookingRules
from core.utils_datetime import TIMEZONE
from domain.enums import PricingType, RefreshArea, ReservationStatus
from domain.models import Reservation, ReservationCreate, ServiceInfo
from services.booking_wizard import BookingWizard
from services.refresh_coordinator import RefreshCoordinator


# ============================================================================
# Test Doubles
# ============================================================================

class FakeUserDataStore:
    """In-memory stand-in for the host app's data store."""

    def __init__(self, failing: Optional[Set[str]] = None):
        self.failing = set(failing or ())
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    async def _fetch(self, name: str, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append((name, kwargs))
        await asyncio.sleep(0)
        if name in self.failing:
            raise RuntimeError(f"{name} unavailable")
        return {"area": name, **kwargs}

    async def fetch_my_reservations(self):
        return await self._fetch("reservations")

    async def fetch_notifications(self, page: int, limit: int):
        return await self._fetch("notifications", page=page, limit=limit)

    async def fetch_dashboard(self):
        return await self._fetch("dashboard")

    async def fetch_payments(self, page: int, limit: int):
        return await self._fetch("payments", page=page, limit=limit)

    async def fetch_receipts(self, page: int, limit: int):
        return await self._fetch("receipts", page=page, limit=limit)

    @property
    def called_areas(self) -> List[str]:
        return [name for name, _ in self.calls]


class FakeReservationBackend:
    """Records creation requests and answers like the reservations API."""

    def __init__(self, reservation_id: str = "res-abc123"):
        self.reservation_id = reservation_id
        self.requests: List[ReservationCreate] = []
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def create_reservation(self, request: ReservationCreate) -> Reservation:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return Reservation(
            id=self.reservation_id,
            status=ReservationStatus.PENDING,
            service_id=request.service_id,
            venue_id=request.venue_id,
            date=request.date,
            time=request.time,
            guests=request.guests,
            total_amount=request.total_amount,
            special_requests=request.special_requests,
        )


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def fixed_now():
    """Provide a fixed 'now' for deterministic date checks."""
    return TIMEZONE.localize(datetime(2025, 3, 10, 12, 0))  # Noon, Monday 10 March 2025


@pytest.fixture(scope="function")
def clock(fixed_now):
    """Clock returning the fixed 'now'."""
    return lambda: fixed_now


@pytest.fixture(scope="function")
def booking_rules():
    """Booking rules pinned to known values, independent of the environment."""
    return BookingRules(
        tax_rate=Decimal("0.16"),
        default_base_price=Decimal("1500"),
        currency="MXN",
        horizon_months=6,
        opening_hour=9,
        closing_hour=22,
        time_slot_minutes=30,
        default_max_guests=10,
        timezone="America/Mexico_City",
    )


@pytest.fixture(scope="function")
def service_info():
    """Per-person priced service at 1500 per guest."""
    return ServiceInfo(
        id="svc-1",
        venue_id="venue-1",
        name="Tasting menu",
        base_price=Decimal("1500"),
        pricing_type=PricingType.PER_PERSON,
    )


@pytest.fixture(scope="function")
def user_store():
    """Data store whose fetches all succeed."""
    return FakeUserDataStore()


@pytest.fixture(scope="function")
def backend():
    """Reservation backend that succeeds unless told otherwise."""
    return FakeReservationBackend()


@pytest.fixture(scope="function")
def create_wizard(service_info, backend, user_store, booking_rules, clock):
    """Factory fixture to create a booking wizard."""
    def _create(**kwargs):
        params = {
            "service": service_info,
            "create_reservation": backend.create_reservation,
            "refresh_coordinator": RefreshCoordinator.from_store(user_store),
            "rules": booking_rules,
            "clock": clock,
        }
        params.update(kwargs)
        return BookingWizard(**params)
    return _create


@pytest.fixture(scope="function")
def valid_contact():
    """Contact details that satisfy every details-step rule."""
    return {
        "firstName": "Ana",
        "lastName": "Lopez",
        "email": "ana.lopez@example.com",
        "phone": "+52 55 1234 5678",
    }


@pytest.fixture(scope="function")
def advance_to_payment(fixed_now, valid_contact):
    """Walk a wizard through the first three steps with valid data."""
    def _advance(wizard, guests: int = 3, special_requests: str = ""):
        wizard.select_date(fixed_now.date() + timedelta(days=7))
        wizard.select_time("19:00")
        assert wizard.next()

        wizard.set_guests(guests)
        assert wizard.next()

        for name, value in valid_contact.items():
            wizard.set_contact_value(name, value)
        wizard.set_special_requests(special_requests)
        assert wizard.next()
        return wizard
    return _advance


@pytest.fixture(scope="function")
def all_areas():
    """Every refreshable area in refresh order."""
    return list(RefreshArea)
