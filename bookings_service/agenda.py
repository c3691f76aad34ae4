"""Upcoming bookings for the lobby display, grouped by day. Read-only.

Days are calendar days in the display's timezone; bookings are stored in
naive UTC and converted only for windowing, grouping and labels.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from itertools import groupby
from typing import List, Tuple

from sqlalchemy.orm import Session

from common.timeutils import to_local, to_naive_utc

from .models import Booking, BookingStatus

WINDOW_DAYS = 7
AGENDA_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


@dataclass(frozen=True)
class AgendaDay:
    date: date
    label: str
    bookings: List[Booking]


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)


def date_label(day: date, today: date) -> str:
    """'today', 'tomorrow', or the weekday and day/month (e.g. 'Wednesday, 21/10')."""
    if day == today:
        return "today"
    if day == today + timedelta(days=1):
        return "tomorrow"
    return day.strftime("%A, %d/%m")


class AgendaProjector:
    """
    Pending and confirmed bookings starting in the next seven days.

    Parameters
    ----------
    db : Session
        Session used for the single read query.
    window_days : int
        Number of calendar days shown, today included.
    zone : tzinfo
        Timezone whose calendar defines "today" and the day groups.
    """

    def __init__(self, db: Session, window_days: int = WINDOW_DAYS, zone: tzinfo = timezone.utc) -> None:
        self._db = db
        self._window_days = window_days
        self._zone = zone

    def window(self, now: datetime) -> Tuple[datetime, datetime]:
        """[start, end) in naive UTC, from local midnight today to local midnight after the last day."""
        local_start = start_of_day(to_local(now, self._zone)).replace(tzinfo=None)
        local_end = local_start + timedelta(days=self._window_days)
        return (
            to_naive_utc(local_start.replace(tzinfo=self._zone)),
            to_naive_utc(local_end.replace(tzinfo=self._zone)),
        )

    def upcoming(self, now: datetime) -> List[AgendaDay]:
        """
        Bookings starting inside the window, ascending by start time, one
        group per local calendar day.
        """
        start, end = self.window(now)
        bookings = (
            self._db.query(Booking)
            .filter(Booking.status.in_(AGENDA_STATUSES))
            .filter(Booking.start_time >= start)
            .filter(Booking.start_time < end)
            .order_by(Booking.start_time.asc(), Booking.id.asc())
            .all()
        )

        today = to_local(now, self._zone).date()
        return [
            AgendaDay(date=day, label=date_label(day, today), bookings=list(group))
            for day, group in groupby(
                bookings, key=lambda booking: to_local(booking.start_time, self._zone).date()
            )
        ]
