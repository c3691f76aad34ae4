"""Billing amount for a booking: started hours times the room's hourly rate."""
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from common.errors import InvalidRangeError

ONE_HOUR = timedelta(hours=1)
CENTS = Decimal("0.01")


def ensure_time_valid(start_time: datetime, end_time: datetime) -> None:
    """
    Validate that a booking time range is well-formed.

    Raises
    ------
    InvalidRangeError
        If end_time is not strictly after start_time.
    """
    if end_time <= start_time:
        raise InvalidRangeError()


def billable_hours(start_time: datetime, end_time: datetime) -> int:
    """Whole hours billed for the range; any started hour counts in full."""
    ensure_time_valid(start_time, end_time)
    hours, remainder = divmod(end_time - start_time, ONE_HOUR)
    if remainder:
        hours += 1
    return hours


def price(hourly_rate, start_time: datetime, end_time: datetime) -> Decimal:
    """
    Compute the amount owed for booking a room over [start_time, end_time).

    Parameters
    ----------
    hourly_rate : Decimal | int | str
        Room rate per hour in currency units.
    start_time : datetime
        Start of the range.
    end_time : datetime
        End of the range.

    Returns
    -------
    Decimal
        ``ceil(hours) * hourly_rate`` rounded to cents.

    Raises
    ------
    InvalidRangeError
        If end_time <= start_time.
    """
    hours = billable_hours(start_time, end_time)
    amount = Decimal(str(hourly_rate)) * hours
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
