from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Response, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from bookings_service.models import Booking
from common.auth import admin_only
from common.database import Base, commit_or_raise, engine, get_db
from common.errors import ConflictError, NotFoundError
from common.handlers import register_exception_handlers
from common.logging_middleware import add_audit_middleware

from . import models, schemas

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Clients Service", version="1.0.0")
router_v1 = APIRouter(prefix="/api/v1")

SERVICE_NAME = "clients"

register_exception_handlers(app, SERVICE_NAME)
add_audit_middleware(app, SERVICE_NAME)


@app.get("/")
def root():
    """
    Health-check endpoint for the Clients service.
    """
    return {"service": "clients", "status": "running"}


def _get_client_or_404(db: Session, client_id: int) -> models.Client:
    client = db.query(models.Client).filter(models.Client.id == client_id).first()
    if client is None:
        raise NotFoundError("Client", client_id)
    return client


def _ensure_email_free(db: Session, email: Optional[str], client_id: int = None) -> None:
    if not email:
        return
    existing = (
        db.query(models.Client)
        .filter(func.lower(models.Client.email) == email.lower())
        .first()
    )
    if existing and existing.id != client_id:
        raise ConflictError("A client with this email already exists")


@router_v1.post("/clients", response_model=schemas.ClientRead, status_code=status.HTTP_201_CREATED)
def create_client(
    client_in: schemas.ClientCreate,
    db: Session = Depends(get_db),
    _: dict = Depends(admin_only),
):
    """
    Register a client from the dashboard.

    Raises
    ------
    ConflictError
        If another client already uses the email.
    """
    _ensure_email_free(db, client_in.email)

    client = models.Client(
        name=client_in.name,
        phone=client_in.phone,
        email=client_in.email,
        company=client_in.company,
    )
    db.add(client)
    commit_or_raise(db, "A client with this email already exists")
    db.refresh(client)
    return client


@router_v1.get("/clients", response_model=List[schemas.ClientRead])
def list_clients(
    search: Optional[str] = Query(default=None, max_length=150),
    db: Session = Depends(get_db),
    _: dict = Depends(admin_only),
):
    """
    List clients ordered by name, optionally filtered by a name substring.
    """
    query = db.query(models.Client)
    if search:
        query = query.filter(models.Client.name.ilike(f"%{search}%"))
    return query.order_by(models.Client.name).all()


@router_v1.get("/clients/{client_id}", response_model=schemas.ClientRead)
def get_client(
    client_id: int,
    db: Session = Depends(get_db),
    _: dict = Depends(admin_only),
):
    return _get_client_or_404(db, client_id)


@router_v1.patch("/clients/{client_id}", response_model=schemas.ClientRead)
def update_client(
    client_id: int,
    update_data: schemas.ClientUpdate,
    db: Session = Depends(get_db),
    _: dict = Depends(admin_only),
):
    """
    Edit a client's contact details. The id never changes, so bookings
    keep pointing at the same client.
    """
    client = _get_client_or_404(db, client_id)

    data = update_data.model_dump(exclude_unset=True)
    if data.get("email"):
        _ensure_email_free(db, data["email"], client.id)
    if "name" in data and data["name"] is None:
        data.pop("name")

    for field, value in data.items():
        setattr(client, field, value)

    db.add(client)
    commit_or_raise(db, "A client with this email already exists")
    db.refresh(client)
    return client


@router_v1.delete("/clients/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client(
    client_id: int,
    db: Session = Depends(get_db),
    _: dict = Depends(admin_only),
):
    """
    Delete a client that no booking references.

    Raises
    ------
    NotFoundError
        If the client does not exist.
    ConflictError
        If any booking references the client.
    """
    client = _get_client_or_404(db, client_id)

    referenced = db.query(db.query(Booking.id).filter(Booking.client_id == client.id).exists()).scalar()
    if referenced:
        raise ConflictError("Client has bookings and cannot be deleted")

    db.delete(client)
    commit_or_raise(db, "Client has bookings and cannot be deleted")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


app.include_router(router_v1)
