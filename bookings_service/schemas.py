import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator

from common.timeutils import to_local, to_naive_utc

from .models import BookingStatus, PaymentStatus
from .revenue import RevenuePeriod


def _naive_utc(value):
    if isinstance(value, datetime):
        return to_naive_utc(value)
    return value


class BookingTimes(BaseModel):
    """
    Room and time range shared by booking inputs.

    Aware datetimes are converted to naive UTC, the storage convention.
    """
    room_id: int = Field(..., ge=1)
    start_time: datetime = Field(...)
    end_time: datetime = Field(...)
    notes: Optional[str] = Field(default="", max_length=2000)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, value):
        return _naive_utc(value)


class BookingCreate(BookingTimes):
    """
    Schema for an administrator creating a booking for a known client.
    """
    client_id: int = Field(..., ge=1)


class IntakeRequest(BookingTimes):
    """
    Schema for the public booking form.

    Contact fields must be non-blank and the email well-formed; the phone
    is stored as digits only.
    """
    name: str = Field(..., min_length=1, max_length=150)
    phone: str = Field(..., min_length=1, max_length=30)
    email: EmailStr
    company: str = Field(..., min_length=1, max_length=150)

    @field_validator("name", "company")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("phone")
    @classmethod
    def phone_digits(cls, value: str) -> str:
        digits = re.sub(r"\D", "", value)
        if not digits:
            raise ValueError("phone must contain digits")
        return digits


class BookingUpdate(BaseModel):
    """
    Schema for partially updating an existing booking.

    All fields are optional; only provided values will be applied. The
    amount is always derived from the room rate and cannot be set.
    """
    client_id: Optional[int] = Field(default=None, ge=1)
    room_id: Optional[int] = Field(default=None, ge=1)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, value):
        return _naive_utc(value)


class BookingRead(BaseModel):
    """
    Schema returned when reading booking information.
    """
    id: int
    client_id: int
    client_name: str
    room_id: int
    room_name: str
    start_time: datetime
    end_time: datetime
    total_amount: Decimal
    status: BookingStatus
    payment_status: PaymentStatus
    notes: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AvailabilityRead(BaseModel):
    room_id: int
    start_time: datetime
    end_time: datetime
    available: bool


# ---------- Agenda ----------

class AgendaEntry(BaseModel):
    """
    One line of the lobby display.

    Times carry an explicit UTC offset so the display can convert them to
    its own zone.
    """
    id: int
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    client_name: str
    room_name: str

    model_config = ConfigDict(from_attributes=True)

    @field_validator("start_time", "end_time")
    @classmethod
    def mark_utc(cls, value: datetime) -> datetime:
        return to_local(value, timezone.utc)


class AgendaDayRead(BaseModel):
    date: date
    label: str
    bookings: List[AgendaEntry]

    model_config = ConfigDict(from_attributes=True)


class AgendaRead(BaseModel):
    generated_at: datetime
    timezone: str
    days: List[AgendaDayRead]


# ---------- Revenue ----------

class MonthlyRevenueRead(BaseModel):
    month: int
    label: str
    revenue: Decimal
    bookings: int

    model_config = ConfigDict(from_attributes=True)


class RevenueSummaryRead(BaseModel):
    """
    Paid-booking statistics for the current month or year.

    monthly_breakdown is only present for the yearly period.
    """
    period: RevenuePeriod
    period_start: datetime
    period_end: datetime
    total_revenue: Decimal
    total_bookings: int
    avg_booking_value: Decimal
    monthly_breakdown: Optional[List[MonthlyRevenueRead]] = None

    model_config = ConfigDict(from_attributes=True)
