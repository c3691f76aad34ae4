"""Revenue statistics over paid bookings. Read-only."""
import calendar
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum as PyEnum
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from common.timeutils import to_naive_utc, utcnow

from .models import Booking, PaymentStatus

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
LAST_INSTANT = timedelta(microseconds=1)


class RevenuePeriod(str, PyEnum):
    CURRENT_MONTH = "current_month"
    CURRENT_YEAR = "current_year"


@dataclass(frozen=True)
class MonthlyRevenue:
    month: int
    label: str
    revenue: Decimal
    bookings: int


@dataclass(frozen=True)
class RevenueSummary:
    period: RevenuePeriod
    period_start: datetime
    period_end: datetime
    total_revenue: Decimal
    total_bookings: int
    avg_booking_value: Decimal
    monthly_breakdown: Optional[List[MonthlyRevenue]] = field(default=None)


def period_window(period: RevenuePeriod, now: datetime) -> Tuple[datetime, datetime]:
    """
    Return [start, next_start) for the calendar month or year containing now.

    The period's inclusive end is every instant strictly before next_start.
    """
    if period == RevenuePeriod.CURRENT_MONTH:
        start = datetime(now.year, now.month, 1)
        if now.month == 12:
            return start, datetime(now.year + 1, 1, 1)
        return start, datetime(now.year, now.month + 1, 1)
    if period == RevenuePeriod.CURRENT_YEAR:
        return datetime(now.year, 1, 1), datetime(now.year + 1, 1, 1)
    raise ValueError(f"Unknown revenue period: {period!r}")


def _average(total: Decimal, count: int) -> Decimal:
    if count == 0:
        return ZERO
    return (total / count).quantize(CENTS, rounding=ROUND_HALF_UP)


class RevenueAggregator:
    """Totals, averages and monthly breakdowns of paid bookings."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def _paid_bookings(self, start: datetime, next_start: datetime):
        return (
            self._db.query(Booking.total_amount, Booking.created_at)
            .filter(Booking.payment_status == PaymentStatus.PAID)
            .filter(Booking.created_at >= start)
            .filter(Booking.created_at < next_start)
            .all()
        )

    def aggregate(self, period: RevenuePeriod, now: Optional[datetime] = None) -> RevenueSummary:
        """
        Summarize paid bookings created within the current month or year.

        For the yearly period the same rows are split into twelve calendar
        months, in order, with empty months reported as zero.
        """
        period = RevenuePeriod(period)
        now = to_naive_utc(now) if now is not None else utcnow()
        start, next_start = period_window(period, now)
        rows = self._paid_bookings(start, next_start)

        total = sum((Decimal(amount) for amount, _ in rows), ZERO)
        count = len(rows)

        breakdown = None
        if period == RevenuePeriod.CURRENT_YEAR:
            revenue_by_month = [ZERO] * 12
            count_by_month = [0] * 12
            for amount, created_at in rows:
                revenue_by_month[created_at.month - 1] += Decimal(amount)
                count_by_month[created_at.month - 1] += 1
            breakdown = [
                MonthlyRevenue(
                    month=index + 1,
                    label=calendar.month_abbr[index + 1],
                    revenue=revenue_by_month[index].quantize(CENTS),
                    bookings=count_by_month[index],
                )
                for index in range(12)
            ]

        return RevenueSummary(
            period=period,
            period_start=start,
            period_end=next_start - LAST_INSTANT,
            total_revenue=total.quantize(CENTS),
            total_bookings=count,
            avg_booking_value=_average(total, count),
            monthly_breakdown=breakdown,
        )
