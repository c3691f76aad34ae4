from datetime import datetime, timedelta, timezone
from decimal import Decimal

from jose import jwt

from common.auth import ALGORITHM, SECRET_KEY
from clients_service.models import Client
from rooms_service.models import Room


def make_token(username: str, role: str) -> str:
    payload = {
        "sub": username,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=30),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def auth_headers(role: str = "admin", username: str = "admin1") -> dict:
    return {"Authorization": f"Bearer {make_token(username, role)}"}


def add_room(db, name="Room A", hourly_rate="50", capacity=8, is_active=True) -> Room:
    room = Room(name=name, hourly_rate=Decimal(hourly_rate), capacity=capacity, is_active=is_active)
    db.add(room)
    db.commit()
    db.refresh(room)
    return room


def add_client(db, name="Ana Souza", email="ana@example.com", phone="47999990000", company="Metal Group") -> Client:
    client = Client(name=name, email=email, phone=phone, company=company)
    db.add(client)
    db.commit()
    db.refresh(client)
    return client
