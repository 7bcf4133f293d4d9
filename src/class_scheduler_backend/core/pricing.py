'''
Session price helpers: hourly rate x duration in hours x roster size.
'''
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal('0.01')
SECONDS_PER_HOUR = Decimal(3600)


def duration_hours(scheduled_start: datetime, scheduled_end: datetime) -> Decimal:
    """Exact duration between two datetimes, in hours."""
    seconds = Decimal(int((scheduled_end - scheduled_start).total_seconds()))
    return seconds / SECONDS_PER_HOUR


def billable_roster(active_member_count: int) -> int:
    """A class with no active members is still billed as a single student."""
    return active_member_count or 1


def calculate_session_price(
    hourly_rate: Decimal | int | float,
    scheduled_start: datetime,
    scheduled_end: datetime,
    active_member_count: int
) -> Decimal:
    """
    price = hourly_rate x duration(hours) x roster, rounded to cents.
    """
    rate = Decimal(str(hourly_rate))
    price = rate * duration_hours(scheduled_start, scheduled_end) * billable_roster(active_member_count)
    return price.quantize(CENTS, rounding=ROUND_HALF_UP)
