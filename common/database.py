import os

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .errors import ConflictError, PersistenceError

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite:///./meeting_rooms.db",
)

# Execution option marking a transaction that will write; on SQLite it takes
# the write lock up front (BEGIN IMMEDIATE) so competing writers queue.
WRITE_INTENT = "reservations_write_intent"


def _make_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    sqlite_engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})

    # pysqlite defers BEGIN until the first DML statement, which would let the
    # overlap check run outside the transaction that inserts the booking.
    # A deferred BEGIN would also let two writers deadlock on lock upgrade.
    @event.listens_for(sqlite_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        if conn.get_execution_options().get(WRITE_INTENT):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return sqlite_engine


engine = _make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Yield a SQLAlchemy database session shared by all services.

    Used as a FastAPI dependency: one session per HTTP request, always
    closed afterwards.

    Yields
    ------
    Session
        Active SQLAlchemy session bound to the reservations database.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def begin_write(db: Session) -> None:
    """
    Start a write transaction on ``db``.

    Any open read transaction is ended first so the write transaction
    begins with the write intent applied.
    """
    if db.in_transaction():
        db.commit()
    db.connection(execution_options={WRITE_INTENT: True})


def commit_or_raise(db: Session, conflict_message: str) -> None:
    """
    Commit ``db``, translating storage failures into domain errors.

    Raises
    ------
    ConflictError
        If a constraint rejects the write, e.g. a unique name taken or a
        row still referenced by a concurrent booking.
    PersistenceError
        For any other storage failure.
    """
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(conflict_message) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError() from exc
