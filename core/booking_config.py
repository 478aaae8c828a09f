"""
Booking configuration: pricing, look-ahead horizon, opening hours and time slots.
Values default to the application settings and can be overridden per wizard.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

import pytz

from core.settings import settings


def add_months(moment: datetime, months: int) -> datetime:
    """
    Shift a datetime by whole calendar months.

    The day is clamped to the last day of the target month, so
    31 August + 6 months lands on 28/29 February. Aware datetimes keep
    their wall-clock time and take the UTC offset in force on the new date.
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    shifted = moment.replace(year=year, month=month, day=day, tzinfo=None)

    if moment.tzinfo is None:
        return shifted
    zone = getattr(moment.tzinfo, "zone", None)
    if zone is not None:
        return pytz.timezone(zone).localize(shifted)
    return shifted.replace(tzinfo=moment.tzinfo)


@dataclass
class BookingRules:
    """Booking rules and constraints."""
    # Pricing
    tax_rate: Decimal = field(default_factory=lambda: Decimal(str(settings.tax_rate)))
    default_base_price: Decimal = field(default_factory=lambda: Decimal(str(settings.default_base_price)))
    currency: str = field(default_factory=lambda: settings.currency)

    # Look-ahead window
    horizon_months: int = field(default_factory=lambda: settings.booking_horizon_months)

    # Opening hours and slots
    opening_hour: int = field(default_factory=lambda: settings.opening_hour)
    closing_hour: int = field(default_factory=lambda: settings.closing_hour)
    time_slot_minutes: int = field(default_factory=lambda: settings.time_slot_minutes)
    calendar_days: int = 30

    # Party size
    min_guests: int = 1
    default_max_guests: int = field(default_factory=lambda: settings.default_max_guests)
    approval_threshold: int = 8  # Parties above this need venue approval

    # Accepted payment methods, in display order
    payment_methods: Tuple[str, ...] = ("card", "cash")

    timezone: str = field(default_factory=lambda: settings.timezone)

    @property
    def tz(self) -> pytz.BaseTzInfo:
        """Get the timezone object."""
        return pytz.timezone(self.timezone)

    def horizon_end(self, now: datetime) -> datetime:
        """Latest bookable moment relative to ``now``."""
        return add_months(now, self.horizon_months)

    def time_slots(self) -> List[time]:
        """All slot start times between opening and closing, closing excluded."""
        slots = []
        current = datetime.combine(date.today(), time(self.opening_hour, 0))
        if self.closing_hour >= 24:
            end = datetime.combine(date.today() + timedelta(days=1), time(0, 0))
        else:
            end = datetime.combine(date.today(), time(self.closing_hour, 0))
        step = timedelta(minutes=self.time_slot_minutes)
        while current < end:
            slots.append(current.time())
            current += step
        return slots

    def is_valid_time_slot(self, slot: time) -> bool:
        """Check if the time aligns with the slot granularity and opening hours."""
        return slot in self.time_slots()


# Singleton instance
_booking_rules_instance: Optional[BookingRules] = None


def get_booking_rules() -> BookingRules:
    """Get the booking rules singleton."""
    global _booking_rules_instance
    if _booking_rules_instance is None:
        _booking_rules_instance = BookingRules()
    return _booking_rules_instance
