from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator


def _normalize_email(value):
    if value is None:
        return value
    return value.strip().lower()


# ---------- Input schemas ----------
class ClientCreate(BaseModel):
    """
    Schema for registering a client from the dashboard.
    """
    name: str = Field(..., min_length=1, max_length=150)
    phone: Optional[str] = Field(default=None, max_length=30)
    email: Optional[EmailStr] = None
    company: Optional[str] = Field(default=None, max_length=150)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value.strip()

    @field_validator("email")
    @classmethod
    def lower_email(cls, value):
        return _normalize_email(value)


class ClientUpdate(BaseModel):
    """
    Schema for editing a client's contact details.

    The client id is immutable; every field here is optional.
    """
    name: Optional[str] = Field(default=None, min_length=1, max_length=150)
    phone: Optional[str] = Field(default=None, max_length=30)
    email: Optional[EmailStr] = None
    company: Optional[str] = Field(default=None, max_length=150)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value):
        return _normalize_email(value)


# ---------- Output schemas ----------
class ClientRead(BaseModel):
    """
    Schema returned when reading client information.
    """
    id: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
