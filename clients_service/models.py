from sqlalchemy import Column, DateTime, Integer, String

from common.database import Base
from common.timeutils import utcnow


class Client(Base):
    """
    SQLAlchemy model for people and companies that book rooms.

    Attributes
    ----------
    id : int
        Primary key; never changes once a booking references it.
    name : str
        Contact name.
    phone : str
        Phone number as typed at intake (digits only when it came from the form).
    email : str
        Lower-cased email address, unique when present; intake matches on it.
    company : str
        Company the contact books for.
    created_at : datetime
        Timestamp of client creation.
    """
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False, index=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=True)
    company = Column(String(150), nullable=True)
    created_at = Column(DateTime, default=utcnow)
