from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


class RoomBase(BaseModel):
    """
    Base schema for room information.

    Shared fields used when creating and reading rooms.
    """
    name: str = Field(..., min_length=1, max_length=100)
    hourly_rate: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    capacity: int = Field(..., ge=1)


class RoomCreate(RoomBase):
    """
    Schema for creating a new room.

    New rooms start active unless stated otherwise.
    """
    is_active: bool = True


class RoomUpdate(BaseModel):
    """
    Schema for partial updates to a room.

    Deactivating a room (is_active=False) is the supported way to retire it.
    A rate change never reprices existing bookings.
    """
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    hourly_rate: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    capacity: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


class RoomRead(RoomBase):
    """
    Schema returned when reading room data.
    """
    id: int
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
