"""
DateTime utilities for booking dates, times and prices.
All booking moments are resolved in the configured timezone.
"""
from datetime import datetime, date, time
from decimal import Decimal
from typing import Any, Optional, Union

import pytz

from core.settings import settings


# Timezone configuration
TIMEZONE = pytz.timezone(settings.timezone)


def get_current_datetime() -> datetime:
    """Get current datetime in the configured timezone."""
    return datetime.now(TIMEZONE)


def localize(dt: datetime, tz=None) -> datetime:
    """Attach the booking timezone to a naive datetime, or convert an aware one."""
    tz = tz or TIMEZONE
    if dt.tzinfo is None:
        return tz.localize(dt)
    return dt.astimezone(tz)


def parse_date_value(value: Any) -> Optional[date]:
    """
    Parse a date-like value.

    Accepts date and datetime instances, and ISO 8601 strings
    ("2025-03-15", "2025-03-15T19:00", "2025-03-15T19:00:00Z").

    Returns:
        date object or None if parsing fails
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    # fromisoformat only learned the Z suffix in 3.11
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'

    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def parse_time_value(value: Any) -> Optional[time]:
    """
    Parse a time-like value ("19:00", "7:30", time or datetime instances).

    Returns:
        time object or None if parsing fails
    """
    if isinstance(value, datetime):
        return value.time().replace(tzinfo=None)
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        return None

    parts = value.strip().split(':')
    if len(parts) not in (2, 3):
        return None
    try:
        numbers = [int(part) for part in parts]
        return time(*numbers)
    except ValueError:
        return None


def combine_local(
    day: Union[date, str, None],
    moment: Union[time, str, None],
    tz=None
) -> Optional[datetime]:
    """
    Combine a date and a time into a timezone-aware datetime.

    Returns:
        datetime localized to the booking timezone, or None if either part is missing
    """
    parsed_date = parse_date_value(day)
    parsed_time = parse_time_value(moment)
    if parsed_date is None or parsed_time is None:
        return None
    return localize(datetime.combine(parsed_date, parsed_time), tz)


def format_time_slot(moment: time) -> str:
    """Format a time as HH:MM."""
    return f"{moment.hour:02d}:{moment.minute:02d}"


def format_price(amount: Union[Decimal, float, int], currency: Optional[str] = None) -> str:
    """
    Format a price for display, e.g. "$5,220.00 MXN".

    Non-numeric input renders as zero.
    """
    currency = currency or settings.currency
    try:
        value = Decimal(str(amount))
    except (ArithmeticError, ValueError):
        value = Decimal("0")
    if not value.is_finite():
        value = Decimal("0")
    return f"${value:,.2f} {currency}"
