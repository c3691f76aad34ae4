"""Booking ledger: the only writer of booking state.

The ledger:
- validates time ranges, references and status transitions before writing
- prices bookings from the room's hourly rate
- checks for overlaps and writes in one transaction, holding a row lock on
  the target room so concurrent writers for that room serialize
- raises domain errors and never retries
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, FrozenSet, List, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clients_service.models import Client
from common.database import begin_write
from common.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    RoomInactiveError,
)
from common.timeutils import to_naive_utc, utcnow
from rooms_service.models import Room

from .models import Booking, BookingStatus, PaymentStatus
from .pricing import ensure_time_valid, price

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

UPDATABLE_FIELDS = frozenset(
    {"client_id", "room_id", "start_time", "end_time", "status", "payment_status", "notes"}
)


def ensure_transition(current: BookingStatus, target: BookingStatus) -> None:
    """
    Validate a status change against the booking state machine.

    Re-applying the current status is not a transition and always passes.

    Raises
    ------
    InvalidTransitionError
        If target is not reachable from current in one step.
    """
    if target == current:
        return
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current, target)


@dataclass(frozen=True)
class BookingFilter:
    """Criteria for listing bookings; unset fields do not filter."""

    statuses: Optional[FrozenSet[BookingStatus]] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    room_id: Optional[int] = None
    client_id: Optional[int] = None


class BookingLedger:
    """Service object owning every booking read and write."""

    def __init__(self, db: Session) -> None:
        self._db = db

    # ---------- transaction helpers ----------

    @contextmanager
    def _storage_errors(self):
        try:
            yield
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception("Booking storage failure")
            raise PersistenceError() from exc

    @contextmanager
    def _write(self):
        with self._storage_errors():
            begin_write(self._db)
            try:
                yield
            except SQLAlchemyError:
                raise
            except Exception:
                self._db.rollback()
                raise
            self._db.commit()

    # ---------- lookups ----------

    def _require_client(self, client_id: int) -> Client:
        client = self._db.get(Client, client_id)
        if client is None:
            raise NotFoundError("Client", client_id)
        return client

    def _lock_room(self, room_id: int, require_active: bool = True) -> Room:
        room = (
            self._db.query(Room)
            .filter(Room.id == room_id)
            .with_for_update()
            .one_or_none()
        )
        if room is None:
            raise NotFoundError("Room", room_id)
        if require_active and not room.is_active:
            raise RoomInactiveError(room_id)
        return room

    def _get_for_update(self, booking_id: int) -> Booking:
        booking = (
            self._db.query(Booking)
            .filter(Booking.id == booking_id)
            .with_for_update(of=Booking)
            .one_or_none()
        )
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    def _has_conflict(
        self,
        room_id: int,
        start_time: datetime,
        end_time: datetime,
        ignore_booking_id: Optional[int] = None,
    ) -> bool:
        q = (
            self._db.query(Booking.id)
            .filter(Booking.room_id == room_id)
            .filter(Booking.status != BookingStatus.CANCELLED)
            .filter(Booking.end_time > start_time)
            .filter(Booking.start_time < end_time)
        )
        if ignore_booking_id is not None:
            q = q.filter(Booking.id != ignore_booking_id)
        return self._db.query(q.exists()).scalar()

    def _find_or_create_client(self, name: str, phone: str, email: str, company: Optional[str]) -> Client:
        email = email.strip().lower()
        client = (
            self._db.query(Client)
            .filter(func.lower(Client.email) == email)
            .one_or_none()
        )
        if client is not None:
            return client

        client = Client(name=name.strip(), phone=phone, email=email, company=company)
        self._db.add(client)
        self._db.flush()
        logger.info("Registered client %s from intake", client.id)
        return client

    def _insert(
        self,
        client: Client,
        room_id: int,
        start_time: datetime,
        end_time: datetime,
        notes: Optional[str],
    ) -> Booking:
        room = self._lock_room(room_id)
        amount = price(room.hourly_rate, start_time, end_time)

        if self._has_conflict(room.id, start_time, end_time):
            logger.info(
                "Rejected booking for room %s from %s to %s: overlap",
                room.id, start_time, end_time,
            )
            raise ConflictError("Room is already booked for this time range")

        booking = Booking(
            client=client,
            room=room,
            start_time=start_time,
            end_time=end_time,
            total_amount=amount,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            notes=notes or "",
            created_at=utcnow(),
        )
        self._db.add(booking)
        self._db.flush()
        return booking

    # ---------- reads ----------

    def get(self, booking_id: int) -> Booking:
        """
        Return a booking by id.

        Raises
        ------
        NotFoundError
            If no booking has this id.
        """
        with self._storage_errors():
            booking = self._db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    def list(self, filters: Optional[BookingFilter] = None) -> List[Booking]:
        """
        List bookings matching the filter, newest start first.

        The date range selects bookings whose start_time lies in
        [date_from, date_to).
        """
        filters = filters or BookingFilter()
        with self._storage_errors():
            q = self._db.query(Booking)
            if filters.statuses:
                q = q.filter(Booking.status.in_(list(filters.statuses)))
            if filters.date_from is not None:
                q = q.filter(Booking.start_time >= to_naive_utc(filters.date_from))
            if filters.date_to is not None:
                q = q.filter(Booking.start_time < to_naive_utc(filters.date_to))
            if filters.room_id is not None:
                q = q.filter(Booking.room_id == filters.room_id)
            if filters.client_id is not None:
                q = q.filter(Booking.client_id == filters.client_id)
            return q.order_by(Booking.start_time.desc(), Booking.id.desc()).all()

    def is_available(
        self,
        room_id: int,
        start_time: datetime,
        end_time: datetime,
        ignore_booking_id: Optional[int] = None,
    ) -> bool:
        """Return True when no non-cancelled booking on the room overlaps the range."""
        start_time, end_time = to_naive_utc(start_time), to_naive_utc(end_time)
        ensure_time_valid(start_time, end_time)
        with self._storage_errors():
            if self._db.get(Room, room_id) is None:
                raise NotFoundError("Room", room_id)
            return not self._has_conflict(room_id, start_time, end_time, ignore_booking_id)

    # ---------- writes ----------

    def create(
        self,
        client_id: int,
        room_id: int,
        start_time: datetime,
        end_time: datetime,
        notes: Optional[str] = "",
    ) -> Booking:
        """
        Create a pending booking for an existing client.

        Raises
        ------
        InvalidRangeError
            If end_time <= start_time.
        NotFoundError
            If the client or room does not exist, or the room is inactive
            (RoomInactiveError).
        ConflictError
            If a non-cancelled booking on the room overlaps the range.
        PersistenceError
            If the store fails.
        """
        start_time, end_time = to_naive_utc(start_time), to_naive_utc(end_time)
        ensure_time_valid(start_time, end_time)

        with self._write():
            client = self._require_client(client_id)
            booking = self._insert(client, room_id, start_time, end_time, notes)
            booking_id = booking.id
            amount = booking.total_amount

        logger.info("Created booking %s for room %s (%s)", booking_id, room_id, amount)
        with self._storage_errors():
            self._db.refresh(booking)
        return booking

    def intake(
        self,
        name: str,
        phone: str,
        email: str,
        company: Optional[str],
        room_id: int,
        start_time: datetime,
        end_time: datetime,
        notes: Optional[str] = "",
    ) -> Booking:
        """
        Book a room from the public intake form.

        The client is looked up by email (case-insensitive) and registered
        when unknown. Client registration and booking commit together, so a
        rejected booking leaves no new client behind.
        """
        start_time, end_time = to_naive_utc(start_time), to_naive_utc(end_time)
        ensure_time_valid(start_time, end_time)

        with self._write():
            client = self._find_or_create_client(name, phone, email, company)
            booking = self._insert(client, room_id, start_time, end_time, notes)
            booking_id = booking.id

        logger.info("Created booking %s for room %s from intake", booking_id, room_id)
        with self._storage_errors():
            self._db.refresh(booking)
        return booking

    def update(self, booking_id: int, fields: Mapping[str, Any]) -> Booking:
        """
        Apply a partial change set to a booking.

        A change of room, start or end re-runs the range and overlap checks
        (ignoring the booking's own interval) and reprices the booking. A
        status change must follow the state machine. None values are ignored.

        Raises
        ------
        NotFoundError, InvalidRangeError, ConflictError,
        InvalidTransitionError, PersistenceError
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported booking fields: {', '.join(sorted(unknown))}")
        changes = {key: value for key, value in fields.items() if value is not None}

        with self._write():
            booking = self._get_for_update(booking_id)

            new_status = BookingStatus(changes.get("status", booking.status))
            ensure_transition(booking.status, new_status)

            new_room_id = changes.get("room_id", booking.room_id)
            new_start = to_naive_utc(changes.get("start_time", booking.start_time))
            new_end = to_naive_utc(changes.get("end_time", booking.end_time))
            rescheduled = (new_room_id, new_start, new_end) != (
                booking.room_id,
                booking.start_time,
                booking.end_time,
            )

            client = None
            if "client_id" in changes and changes["client_id"] != booking.client_id:
                client = self._require_client(changes["client_id"])

            room = None
            amount = booking.total_amount
            if rescheduled:
                ensure_time_valid(new_start, new_end)
                room = self._lock_room(new_room_id, require_active=new_room_id != booking.room_id)
                amount = price(room.hourly_rate, new_start, new_end)
                if new_status != BookingStatus.CANCELLED and self._has_conflict(
                    new_room_id, new_start, new_end, ignore_booking_id=booking.id
                ):
                    logger.info(
                        "Rejected update of booking %s to room %s from %s to %s: overlap",
                        booking.id, new_room_id, new_start, new_end,
                    )
                    raise ConflictError("Room is already booked for this time range")

            # every check passed; apply
            if client is not None:
                booking.client = client
            if room is not None:
                booking.room = room
                booking.start_time = new_start
                booking.end_time = new_end
                booking.total_amount = amount
            booking.status = new_status
            if "payment_status" in changes:
                booking.payment_status = PaymentStatus(changes["payment_status"])
            if "notes" in changes:
                booking.notes = changes["notes"]

        logger.info("Updated booking %s (%s)", booking_id, ", ".join(sorted(changes)) or "no changes")
        with self._storage_errors():
            self._db.refresh(booking)
        return booking

    def delete(self, booking_id: int) -> None:
        """
        Permanently remove a booking. There is no undo; use status=cancelled
        to keep history.

        Raises
        ------
        NotFoundError
            If no booking has this id.
        """
        with self._write():
            booking = self._get_for_update(booking_id)
            self._db.delete(booking)
        logger.info("Deleted booking %s", booking_id)
