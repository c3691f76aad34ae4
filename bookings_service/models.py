from enum import Enum as PyEnum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.orm import relationship

from common.database import Base
from common.timeutils import utcnow
from clients_service.models import Client
from rooms_service.models import Room


class BookingStatus(str, PyEnum):
    """
    Enumeration of booking lifecycle states.

    Values
    ------
    pending
        Requested, waiting for confirmation. Holds the room.
    confirmed
        Accepted by an administrator. Holds the room.
    completed
        The meeting took place. Terminal.
    cancelled
        Withdrawn; no longer blocks the room. Terminal.
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, PyEnum):
    """
    Payment label tracked next to the booking; no ordering between values.
    """
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    REFUNDED = "refunded"


class Booking(Base):
    """
    SQLAlchemy model representing a room reservation.

    Attributes
    ----------
    id : int
        Primary key.
    client_id : int
        Client who booked; foreign key to clients.id.
    room_id : int
        Booked room; foreign key to rooms.id.
    start_time : datetime
        Start of the reserved half-open interval (naive UTC).
    end_time : datetime
        End of the reserved interval, strictly after start_time.
    total_amount : Decimal
        Price computed from the room rate when the interval was last set.
    status : BookingStatus
        Lifecycle state (pending/confirmed/completed/cancelled).
    payment_status : PaymentStatus
        Payment label (pending/paid/partial/refunded).
    notes : str
        Free text.
    created_at : datetime
        Creation timestamp; never modified.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_bookings_range"),
        CheckConstraint("total_amount >= 0", name="ck_bookings_amount_non_negative"),
        Index("ix_bookings_room_start", "room_id", "start_time"),
    )

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(
        Integer, ForeignKey("clients.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    room_id = Column(
        Integer, ForeignKey("rooms.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING)
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    client = relationship(Client, lazy="joined")
    room = relationship(Room, lazy="joined")

    @property
    def client_name(self) -> str:
        return self.client.name

    @property
    def room_name(self) -> str:
        return self.room.name
