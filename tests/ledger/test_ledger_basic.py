import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from bookings_service.ledger import ALLOWED_TRANSITIONS, BookingFilter, BookingLedger
from bookings_service.models import Booking, BookingStatus, PaymentStatus
from clients_service.models import Client
from common.database import Base, SessionLocal, engine
from common.errors import (
    ConflictError,
    DomainError,
    InvalidRangeError,
    InvalidTransitionError,
    NotFoundError,
    RoomInactiveError,
)
from helpers import add_client, add_room

DAY = datetime(2026, 10, 20)


def at(hour: int, minute: int = 0, day: datetime = DAY) -> datetime:
    return day.replace(hour=hour, minute=minute)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def ledger(db):
    return BookingLedger(db)


@pytest.fixture
def room(db):
    return add_room(db, name="Room A", hourly_rate="50")


@pytest.fixture
def client(db):
    return add_client(db)


def test_end_to_end_half_open_scenario(ledger, room, client):
    first = ledger.create(client.id, room.id, at(9), at(10, 30))
    assert first.total_amount == Decimal("100.00")

    with pytest.raises(ConflictError):
        ledger.create(client.id, room.id, at(10), at(11))

    adjacent = ledger.create(client.id, room.id, at(10, 30), at(11))
    assert adjacent.total_amount == Decimal("50.00")


def test_created_booking_reads_back_identically(ledger, room, client):
    created = ledger.create(client.id, room.id, at(14), at(15), notes="Board meeting")
    fetched = ledger.get(created.id)

    assert fetched.start_time == at(14)
    assert fetched.end_time == at(15)
    assert fetched.total_amount == Decimal("50.00")
    assert fetched.status == BookingStatus.PENDING
    assert fetched.payment_status == PaymentStatus.PENDING
    assert fetched.notes == "Board meeting"
    assert fetched.client_name == client.name
    assert fetched.room_name == "Room A"


def test_aware_times_are_stored_as_naive_utc(ledger, room, client):
    minus_three = timezone(timedelta(hours=-3))
    booking = ledger.create(
        client.id,
        room.id,
        datetime(2026, 10, 20, 9, 0, tzinfo=minus_three),
        datetime(2026, 10, 20, 10, 0, tzinfo=minus_three),
    )
    assert booking.start_time == at(12)
    assert booking.end_time == at(13)


def test_conflict_leaves_existing_booking_untouched(db, ledger, room, client):
    existing = ledger.create(client.id, room.id, at(9), at(11))

    with pytest.raises(ConflictError):
        ledger.create(client.id, room.id, at(8), at(12))

    again = ledger.get(existing.id)
    assert (again.start_time, again.end_time, again.status) == (at(9), at(11), BookingStatus.PENDING)
    assert db.query(Booking).count() == 1


def test_same_time_in_other_room_is_allowed(db, ledger, room, client):
    other = add_room(db, name="Room B", hourly_rate="80")
    ledger.create(client.id, room.id, at(9), at(10))
    booking = ledger.create(client.id, other.id, at(9), at(10))
    assert booking.total_amount == Decimal("80.00")


def test_cancelled_booking_frees_the_slot(ledger, room, client):
    booking = ledger.create(client.id, room.id, at(9), at(10))
    ledger.update(booking.id, {"status": BookingStatus.CANCELLED})

    replacement = ledger.create(client.id, room.id, at(9), at(10))
    assert replacement.status == BookingStatus.PENDING


@pytest.mark.parametrize(
    "start, end",
    [(at(10), at(10)), (at(11), at(10))],
)
def test_invalid_range_is_rejected(ledger, room, client, start, end):
    with pytest.raises(InvalidRangeError):
        ledger.create(client.id, room.id, start, end)


def test_missing_references_are_rejected(ledger, room, client):
    with pytest.raises(NotFoundError) as exc_info:
        ledger.create(999, room.id, at(9), at(10))
    assert exc_info.value.entity == "Client"

    with pytest.raises(NotFoundError) as exc_info:
        ledger.create(client.id, 999, at(9), at(10))
    assert exc_info.value.entity == "Room"


def test_inactive_room_cannot_be_booked(db, ledger, client):
    retired = add_room(db, name="Old Room", is_active=False)
    with pytest.raises(RoomInactiveError):
        ledger.create(client.id, retired.id, at(9), at(10))


def test_intake_registers_client_once(db, ledger, room):
    first = ledger.intake("Bruno Lima", "47988887777", "Bruno@Example.com", "Wetzel", room.id, at(9), at(10))
    second = ledger.intake("Bruno L.", "47988887777", "bruno@example.com", "Wetzel", room.id, at(13), at(14))

    assert first.client_id == second.client_id
    client = db.get(Client, first.client_id)
    assert client.email == "bruno@example.com"
    assert client.company == "Wetzel"
    assert client.name == "Bruno Lima"


def test_rejected_intake_leaves_no_new_client(db, ledger, room, client):
    ledger.create(client.id, room.id, at(9), at(10))

    with pytest.raises(ConflictError):
        ledger.intake("Carla Dias", "47911112222", "carla@example.com", "Porto", room.id, at(9, 30), at(10, 30))

    assert db.query(Client).filter(Client.email == "carla@example.com").count() == 0


def test_reschedule_reprices_and_checks_overlap(ledger, room, client):
    morning = ledger.create(client.id, room.id, at(9), at(10))
    afternoon = ledger.create(client.id, room.id, at(14), at(15))

    with pytest.raises(ConflictError):
        ledger.update(afternoon.id, {"start_time": at(9, 30), "end_time": at(10, 30)})

    moved = ledger.update(afternoon.id, {"start_time": at(10), "end_time": at(12, 15)})
    assert moved.total_amount == Decimal("150.00")
    assert ledger.get(morning.id).start_time == at(9)


def test_update_ignores_own_interval(ledger, room, client):
    booking = ledger.create(client.id, room.id, at(9), at(10))
    extended = ledger.update(booking.id, {"end_time": at(11)})
    assert extended.total_amount == Decimal("100.00")


def test_move_to_another_room_uses_its_rate(db, ledger, room, client):
    premium = add_room(db, name="Salao Nobre", hourly_rate="995")
    booking = ledger.create(client.id, room.id, at(9), at(10))

    moved = ledger.update(booking.id, {"room_id": premium.id})
    assert moved.room_id == premium.id
    assert moved.room_name == "Salao Nobre"
    assert moved.total_amount == Decimal("995.00")


def test_rate_change_does_not_reprice_untouched_booking(db, ledger, room, client):
    booking = ledger.create(client.id, room.id, at(9), at(10))
    room.hourly_rate = Decimal("70")
    db.commit()

    updated = ledger.update(booking.id, {"notes": "bring projector"})
    assert updated.total_amount == Decimal("50.00")
    assert updated.notes == "bring projector"


def test_failed_update_applies_nothing(ledger, room, client):
    ledger.create(client.id, room.id, at(9), at(10))
    other = ledger.create(client.id, room.id, at(11), at(12))

    with pytest.raises(ConflictError):
        ledger.update(
            other.id,
            {"start_time": at(9), "status": BookingStatus.CONFIRMED, "notes": "moved"},
        )

    unchanged = ledger.get(other.id)
    assert unchanged.start_time == at(11)
    assert unchanged.status == BookingStatus.PENDING
    assert unchanged.notes == ""


def test_legal_status_path(ledger, room, client):
    booking = ledger.create(client.id, room.id, at(9), at(10))
    assert ledger.update(booking.id, {"status": BookingStatus.CONFIRMED}).status == BookingStatus.CONFIRMED
    assert ledger.update(booking.id, {"status": "completed"}).status == BookingStatus.COMPLETED


@pytest.mark.parametrize(
    "path, illegal",
    [
        ([BookingStatus.CONFIRMED, BookingStatus.COMPLETED], BookingStatus.PENDING),
        ([BookingStatus.CANCELLED], BookingStatus.CONFIRMED),
        ([], BookingStatus.COMPLETED),
        ([BookingStatus.CONFIRMED], BookingStatus.PENDING),
    ],
)
def test_illegal_status_changes(ledger, room, client, path, illegal):
    booking = ledger.create(client.id, room.id, at(9), at(10))
    for step in path:
        ledger.update(booking.id, {"status": step})

    with pytest.raises(InvalidTransitionError):
        ledger.update(booking.id, {"status": illegal})


def test_transition_table_covers_every_status():
    assert set(ALLOWED_TRANSITIONS) == set(BookingStatus)


def test_payment_status_moves_freely(ledger, room, client):
    booking = ledger.create(client.id, room.id, at(9), at(10))
    for payment in (PaymentStatus.PAID, PaymentStatus.PENDING, PaymentStatus.REFUNDED, PaymentStatus.PARTIAL):
        assert ledger.update(booking.id, {"payment_status": payment}).payment_status == payment


def test_unknown_update_field_is_rejected(ledger, room, client):
    booking = ledger.create(client.id, room.id, at(9), at(10))
    with pytest.raises(ValueError):
        ledger.update(booking.id, {"total_amount": Decimal("1")})


def test_delete_is_permanent(ledger, room, client):
    booking = ledger.create(client.id, room.id, at(9), at(10))
    ledger.delete(booking.id)

    with pytest.raises(NotFoundError):
        ledger.get(booking.id)
    with pytest.raises(NotFoundError):
        ledger.delete(booking.id)


def test_update_missing_booking(ledger):
    with pytest.raises(NotFoundError):
        ledger.update(12345, {"notes": "x"})


def test_list_filters(db, ledger, room, client):
    other_room = add_room(db, name="Room B")
    other_client = add_client(db, name="Dora", email="dora@example.com")

    a = ledger.create(client.id, room.id, at(9), at(10))
    b = ledger.create(other_client.id, room.id, at(9, 0, DAY + timedelta(days=1)), at(10, 0, DAY + timedelta(days=1)))
    c = ledger.create(client.id, other_room.id, at(9), at(10))
    ledger.update(c.id, {"status": BookingStatus.CANCELLED})

    assert [x.id for x in ledger.list()] == [b.id, c.id, a.id]
    assert {x.id for x in ledger.list(BookingFilter(room_id=room.id))} == {a.id, b.id}
    assert {x.id for x in ledger.list(BookingFilter(client_id=other_client.id))} == {b.id}
    assert {x.id for x in ledger.list(BookingFilter(statuses=frozenset({BookingStatus.CANCELLED})))} == {c.id}
    assert {x.id for x in ledger.list(BookingFilter(date_from=DAY, date_to=DAY + timedelta(days=1)))} == {a.id, c.id}


def test_is_available(ledger, room, client):
    ledger.create(client.id, room.id, at(9), at(10))
    assert ledger.is_available(room.id, at(9, 30), at(9, 45)) is False
    assert ledger.is_available(room.id, at(10), at(11)) is True

    with pytest.raises(NotFoundError):
        ledger.is_available(999, at(10), at(11))


def test_second_session_sees_committed_booking(db, ledger, room, client):
    client_id, room_id = client.id, room.id
    first_id = ledger.create(client_id, room_id, at(9), at(10)).id
    db.close()

    other_session = SessionLocal()
    try:
        with pytest.raises(ConflictError):
            BookingLedger(other_session).create(client_id, room_id, at(9, 15), at(9, 45))
        assert other_session.query(Booking).count() == 1
        assert other_session.get(Booking, first_id) is not None
    finally:
        other_session.close()


def test_no_overlaps_after_many_writes(db, ledger, room, client):
    starts = [at(8), at(8, 30), at(9), at(9, 45), at(10), at(11), at(10, 59), at(12)]
    for start in starts:
        try:
            ledger.create(client.id, room.id, start, start + timedelta(minutes=75))
        except ConflictError:
            pass

    active = [b for b in ledger.list() if b.status != BookingStatus.CANCELLED]
    for first in active:
        for second in active:
            if first.id != second.id:
                assert not (first.start_time < second.end_time and second.start_time < first.end_time)


def test_concurrent_writers_for_one_slot(db, room, client):
    client_id, room_id = client.id, room.id
    db.close()

    writers = 8
    barrier = threading.Barrier(writers)
    outcomes = []
    outcomes_lock = threading.Lock()

    def attempt(offset):
        session = SessionLocal()
        try:
            barrier.wait()
            BookingLedger(session).create(client_id, room_id, at(9, offset), at(10, offset))
            outcome = "ok"
        except DomainError as exc:
            outcome = type(exc).__name__
        finally:
            session.close()
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt, args=(offset,)) for offset in range(writers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(outcomes) == ["ConflictError"] * (writers - 1) + ["ok"]
    with SessionLocal() as check:
        assert check.query(Booking).count() == 1
