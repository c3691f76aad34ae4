from typing import List

from fastapi import APIRouter, Depends, FastAPI, Query, Response, status
from sqlalchemy.orm import Session

from bookings_service.models import Booking
from common.auth import admin_only, admin_or_display
from common.cache import ROOMS_PREFIX, delete_prefix, get_cached_json, set_cached_json
from common.database import Base, commit_or_raise, engine, get_db
from common.errors import ConflictError, NotFoundError
from common.handlers import register_exception_handlers
from common.logging_middleware import add_audit_middleware

from . import models, schemas

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Rooms Service", version="1.0.0")

router_v1 = APIRouter(prefix="/api/v1")

SERVICE_NAME = "rooms"
ROOMS_CACHE_TTL = 60

register_exception_handlers(app, SERVICE_NAME)
add_audit_middleware(app, SERVICE_NAME)


@app.get("/")
def root():
    """
    Health-check endpoint for the Rooms service.

    Returns
    -------
    dict
        A small JSON payload indicating that the service is running.
    """
    return {"service": "rooms", "status": "running"}


def _get_room_or_404(db: Session, room_id: int) -> models.Room:
    room = db.query(models.Room).filter(models.Room.id == room_id).first()
    if room is None:
        raise NotFoundError("Room", room_id)
    return room


def _ensure_unique_name(db: Session, name: str, room_id: int = None) -> None:
    existing = db.query(models.Room).filter(models.Room.name == name).first()
    if existing and existing.id != room_id:
        raise ConflictError("Room with this name already exists")


# ---------- Create room ----------


@router_v1.post("/rooms", response_model=schemas.RoomRead, status_code=status.HTTP_201_CREATED)
def create_room(
    room_in: schemas.RoomCreate,
    db: Session = Depends(get_db),
    _: dict = Depends(admin_only),
):
    """
    Create a new meeting room.

    Behavior
    --------
    - Ensures that the room name is unique.
    - Stores hourly rate, capacity and active flag.

    Raises
    ------
    ConflictError
        If a room with the same name already exists.
    """
    _ensure_unique_name(db, room_in.name)

    room = models.Room(
        name=room_in.name,
        hourly_rate=room_in.hourly_rate,
        capacity=room_in.capacity,
        is_active=room_in.is_active,
    )
    db.add(room)
    commit_or_raise(db, "Room with this name already exists")
    db.refresh(room)
    delete_prefix(ROOMS_PREFIX)
    return room


# ---------- List rooms ----------


@router_v1.get("/rooms", response_model=List[schemas.RoomRead])
def list_rooms(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
    _: dict = Depends(admin_or_display),
):
    """
    List rooms ordered by name.

    Behavior
    --------
    - Only active rooms by default: the set offered when booking.
    - ``include_inactive=true`` adds retired rooms for the admin catalog.
    """
    cache_key = f"{ROOMS_PREFIX}{'all' if include_inactive else 'active'}"
    cached = get_cached_json(cache_key)
    if cached is not None:
        return cached

    query = db.query(models.Room)
    if not include_inactive:
        query = query.filter(models.Room.is_active.is_(True))
    rooms = query.order_by(models.Room.name).all()

    data = [schemas.RoomRead.model_validate(r).model_dump(mode="json") for r in rooms]
    set_cached_json(cache_key, data, ttl_seconds=ROOMS_CACHE_TTL)
    return rooms


@router_v1.get("/rooms/{room_id}", response_model=schemas.RoomRead)
def get_room(
    room_id: int,
    db: Session = Depends(get_db),
    _: dict = Depends(admin_or_display),
):
    """
    Retrieve a single room by its ID, active or not.
    """
    return _get_room_or_404(db, room_id)


# ---------- Update / delete rooms (admin) ----------


@router_v1.patch("/rooms/{room_id}", response_model=schemas.RoomRead)
def update_room(
    room_id: int,
    update_data: schemas.RoomUpdate,
    db: Session = Depends(get_db),
    _: dict = Depends(admin_only),
):
    """
    Update an existing room.

    Behavior
    --------
    - Allows updating name, hourly rate, capacity, and the active flag.
    - Setting is_active=false retires the room: existing bookings stay,
      new bookings are refused.
    - A new hourly rate applies to future pricing only.

    Raises
    ------
    NotFoundError
        If the room does not exist.
    ConflictError
        If the new name belongs to another room.
    """
    room = _get_room_or_404(db, room_id)

    if update_data.name is not None and update_data.name != room.name:
        _ensure_unique_name(db, update_data.name, room.id)
        room.name = update_data.name
    if update_data.hourly_rate is not None:
        room.hourly_rate = update_data.hourly_rate
    if update_data.capacity is not None:
        room.capacity = update_data.capacity
    if update_data.is_active is not None:
        room.is_active = update_data.is_active

    db.add(room)
    commit_or_raise(db, "Room with this name already exists")
    db.refresh(room)
    delete_prefix(ROOMS_PREFIX)
    return room


@router_v1.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_room(
    room_id: int,
    db: Session = Depends(get_db),
    _: dict = Depends(admin_only),
):
    """
    Delete a room that no booking references.

    Behavior
    --------
    - Rooms with bookings (in any status) cannot be deleted; deactivate
      them with is_active=false instead.

    Raises
    ------
    NotFoundError
        If the room does not exist.
    ConflictError
        If any booking references the room.
    """
    room = _get_room_or_404(db, room_id)

    referenced = db.query(db.query(Booking.id).filter(Booking.room_id == room.id).exists()).scalar()
    if referenced:
        raise ConflictError("Room has bookings; deactivate it instead")

    db.delete(room)
    commit_or_raise(db, "Room has bookings; deactivate it instead")
    delete_prefix(ROOMS_PREFIX)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


app.include_router(router_v1)
