import os
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from common.auth import admin_only, admin_or_display
from common.cache import REVENUE_PREFIX, delete_prefix, get_cached_json, set_cached_json
from common.database import Base, engine, get_db
from common.handlers import register_exception_handlers
from common.logging_middleware import add_audit_middleware
from common.timeutils import resolve_timezone, utcnow

from . import schemas
from .agenda import AgendaProjector
from .ledger import BookingFilter, BookingLedger
from .models import BookingStatus
from .rate_limiter import ip_rate_limiter
from .revenue import RevenueAggregator, RevenuePeriod, period_window

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Bookings Service", version="1.0.0")
router_v1 = APIRouter(prefix="/api/v1")

SERVICE_NAME = "bookings"
REVENUE_CACHE_TTL = 60
AGENDA_TIMEZONE = os.getenv("AGENDA_TIMEZONE", "UTC")

register_exception_handlers(app, SERVICE_NAME)
add_audit_middleware(app, SERVICE_NAME)


def get_ledger(db: Session = Depends(get_db)) -> BookingLedger:
    return BookingLedger(db)


def _after_write() -> None:
    delete_prefix(REVENUE_PREFIX)


@app.get("/")
def root():
    """
    Health-check endpoint for the Bookings service.

    Returns
    -------
    dict
        A small JSON payload indicating that the service is running.
    """
    return {"service": "bookings", "status": "running"}


# ---------- Check room availability ----------


@router_v1.get("/bookings/availability", response_model=schemas.AvailabilityRead)
def check_availability(
    room_id: int = Query(..., ge=1),
    start_time: datetime = Query(...),
    end_time: datetime = Query(...),
    ledger: BookingLedger = Depends(get_ledger),
    _: Dict = Depends(admin_or_display),
):
    """
    Check if a room is free during a given time range.

    Returns
    -------
    AvailabilityRead
        The normalized range and whether it is free.

    Raises
    ------
    InvalidRangeError
        If end_time is not after start_time.
    NotFoundError
        If the room does not exist.
    """
    available = ledger.is_available(room_id, start_time, end_time)
    return {
        "room_id": room_id,
        "start_time": start_time,
        "end_time": end_time,
        "available": available,
    }


# ---------- Public intake ----------


@router_v1.post(
    "/bookings/intake",
    response_model=schemas.BookingRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(ip_rate_limiter)],
)
def submit_intake(
    intake_in: schemas.IntakeRequest,
    ledger: BookingLedger = Depends(get_ledger),
):
    """
    Book a room from the public form.

    Behavior
    --------
    - Reuses the client with the same email, or registers a new one.
    - Creates a pending booking priced from the room's hourly rate.
    - Rejects ranges that overlap a non-cancelled booking (409).
    """
    booking = ledger.intake(
        name=intake_in.name,
        phone=intake_in.phone,
        email=intake_in.email,
        company=intake_in.company,
        room_id=intake_in.room_id,
        start_time=intake_in.start_time,
        end_time=intake_in.end_time,
        notes=intake_in.notes,
    )
    _after_write()
    return booking


# ---------- Admin: create / list / read / update / delete ----------


@router_v1.post(
    "/bookings",
    response_model=schemas.BookingRead,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    booking_in: schemas.BookingCreate,
    ledger: BookingLedger = Depends(get_ledger),
    _: Dict = Depends(admin_only),
):
    """
    Create a booking for an existing client.

    Raises
    ------
    NotFoundError
        Unknown client or room, or the room is inactive.
    InvalidRangeError
        end_time is not after start_time.
    ConflictError
        The room is already booked for an overlapping range.
    """
    booking = ledger.create(
        client_id=booking_in.client_id,
        room_id=booking_in.room_id,
        start_time=booking_in.start_time,
        end_time=booking_in.end_time,
        notes=booking_in.notes,
    )
    _after_write()
    return booking


@router_v1.get("/bookings", response_model=List[schemas.BookingRead])
def list_bookings(
    status_in: Optional[List[BookingStatus]] = Query(default=None, alias="status"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    room_id: Optional[int] = Query(default=None, ge=1),
    client_id: Optional[int] = Query(default=None, ge=1),
    ledger: BookingLedger = Depends(get_ledger),
    _: Dict = Depends(admin_only),
):
    """
    List bookings with optional filters, newest start first.

    Parameters
    ----------
    status_in : Optional[List[BookingStatus]]
        Repeatable ``status`` query parameter; keeps bookings in any of them.
    date_from, date_to : Optional[datetime]
        Keep bookings starting in [date_from, date_to).
    room_id, client_id : Optional[int]
        Restrict to one room or one client.
    """
    filters = BookingFilter(
        statuses=frozenset(status_in) if status_in else None,
        date_from=date_from,
        date_to=date_to,
        room_id=room_id,
        client_id=client_id,
    )
    return ledger.list(filters)


@router_v1.get("/bookings/{booking_id}", response_model=schemas.BookingRead)
def get_booking(
    booking_id: int,
    ledger: BookingLedger = Depends(get_ledger),
    _: Dict = Depends(admin_only),
):
    return ledger.get(booking_id)


@router_v1.patch("/bookings/{booking_id}", response_model=schemas.BookingRead)
def update_booking(
    booking_id: int,
    update_data: schemas.BookingUpdate,
    ledger: BookingLedger = Depends(get_ledger),
    _: Dict = Depends(admin_only),
):
    """
    Update a booking's client, room, time, status, payment status or notes.

    Behavior
    --------
    - Applies only the fields provided.
    - A new room or time range is re-validated, checked for overlaps and
      repriced.
    - Status changes must follow pending → confirmed → completed, with
      cancellation allowed from pending or confirmed.
    """
    booking = ledger.update(booking_id, update_data.model_dump(exclude_unset=True))
    _after_write()
    return booking


@router_v1.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_booking(
    booking_id: int,
    ledger: BookingLedger = Depends(get_ledger),
    _: Dict = Depends(admin_only),
):
    """
    Permanently delete a booking.

    Unlike cancelling (status=cancelled), this erases the record and
    cannot be undone.
    """
    ledger.delete(booking_id)
    _after_write()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Revenue ----------


@router_v1.get("/revenue", response_model=schemas.RevenueSummaryRead)
def aggregate_revenue(
    period: RevenuePeriod = Query(default=RevenuePeriod.CURRENT_MONTH),
    db: Session = Depends(get_db),
    _: Dict = Depends(admin_only),
):
    """
    Revenue from paid bookings created in the current month or year.

    Results are cached briefly and dropped after any booking write.
    """
    now = utcnow()
    start, _next = period_window(period, now)
    cache_key = f"{REVENUE_PREFIX}{period.value}:{start:%Y-%m}"

    cached = get_cached_json(cache_key)
    if cached is not None:
        return cached

    summary = RevenueAggregator(db).aggregate(period, now=now)
    payload = schemas.RevenueSummaryRead.model_validate(summary)
    set_cached_json(cache_key, payload.model_dump(mode="json"), ttl_seconds=REVENUE_CACHE_TTL)
    return payload


# ---------- Agenda ----------


@router_v1.get("/agenda", response_model=schemas.AgendaRead)
def upcoming_agenda(
    tz: Optional[str] = Query(default=None, max_length=64),
    db: Session = Depends(get_db),
    _: Dict = Depends(admin_or_display),
):
    """
    Pending and confirmed bookings for today and the next six days,
    grouped by day with 'today' / 'tomorrow' labels.

    Parameters
    ----------
    tz : Optional[str]
        IANA zone of the display (e.g. ``America/Sao_Paulo``); days and
        labels follow its calendar. Defaults to AGENDA_TIMEZONE.

    Raises
    ------
    HTTPException
        400 if the timezone is unknown.
    """
    zone_name = tz or AGENDA_TIMEZONE
    try:
        zone = resolve_timezone(zone_name)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    now = utcnow()
    days = AgendaProjector(db, zone=zone).upcoming(now)
    return {
        "generated_at": now,
        "timezone": zone_name,
        "days": [schemas.AgendaDayRead.model_validate(day) for day in days],
    }


app.include_router(router_v1)
