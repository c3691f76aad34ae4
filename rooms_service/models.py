from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Numeric, String

from common.database import Base
from common.timeutils import utcnow


class Room(Base):
    """
    SQLAlchemy model representing a bookable meeting room.

    Attributes
    ----------
    id : int
        Primary key.
    name : str
        Human-readable, unique room name (e.g. 'Sala Wetzel').
    hourly_rate : Decimal
        Price per started hour, in currency units.
    capacity : int
        Number of seats; informational only.
    is_active : bool
        Soft-delete flag; inactive rooms cannot receive new bookings.
    created_at : datetime
        Timestamp recording when the room was created.
    """
    __tablename__ = "rooms"
    __table_args__ = (
        CheckConstraint("hourly_rate > 0", name="ck_rooms_hourly_rate_positive"),
        CheckConstraint("capacity > 0", name="ck_rooms_capacity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    hourly_rate = Column(Numeric(10, 2), nullable=False)
    capacity = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
