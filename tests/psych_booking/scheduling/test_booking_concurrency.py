import threading
import time as clock
from datetime import date, datetime, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from psych_booking.core.caller import Caller
from psych_booking.core.errors import OverlapError, SlotUnavailable
from psych_booking.database import Base
from psych_booking.models.appointment import Appointment
from psych_booking.models.schedule import ScheduleBlock
from psych_booking.models.user import User, UserRole
from psych_booking.scheduling import booking, schedule_store
from psych_booking.scheduling.booking import book_appointment
from psych_booking.scheduling.schedule_store import BlockSpec

DAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 6, 12, 0)
HOLD_SECONDS = 0.3


@pytest.fixture
def file_session_factory(tmp_path):
    # Separate connections per thread, so SQLite's own locking is what is under test.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'booking.db'}",
        connect_args={'check_same_thread': False, 'timeout': 15},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture
def seeded(file_session_factory):
    db = file_session_factory()
    try:
        psychologist = User(email='ana@uni.edu', name='Ana', role=UserRole.PSYCHOLOGIST)
        students = [
            User(email='sam@uni.edu', name='Sam', role=UserRole.STUDENT),
            User(email='kim@uni.edu', name='Kim', role=UserRole.STUDENT),
        ]
        db.add_all([psychologist, *students])
        db.commit()
        db.add(ScheduleBlock(psychologist_id=psychologist.id, date=DAY, start_time=time(9, 0), end_time=time(12, 0)))
        db.commit()
        return {'psychologist': psychologist.id, 'students': [student.id for student in students]}
    finally:
        db.close()


def _run_concurrently(session_factory, attempts) -> list[str]:
    """Start every attempt at once, each with its own session; return outcomes in order."""
    barrier = threading.Barrier(len(attempts))
    outcomes: list[str] = [''] * len(attempts)

    def worker(index, attempt):
        db = session_factory()
        try:
            barrier.wait()
            attempt(db)
            outcomes[index] = 'ok'
        except (SlotUnavailable, OverlapError):
            outcomes[index] = 'rejected'
        except Exception as exc:  # surfaced through the assertion below
            outcomes[index] = repr(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=worker, args=(index, attempt)) for index, attempt in enumerate(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return outcomes


@pytest.fixture
def slow_check(monkeypatch: pytest.MonkeyPatch):
    """Hold each booking inside its transaction right after the availability check."""
    original = booking.ensure_interval_bookable

    def check_then_wait(*args, **kwargs):
        original(*args, **kwargs)
        clock.sleep(HOLD_SECONDS)

    monkeypatch.setattr(booking, 'ensure_interval_bookable', check_then_wait)


def _booking_attempt(seeded, student_id: int, start: time):
    def attempt(db):
        book_appointment(
            db,
            Caller(user_id=student_id, role=UserRole.STUDENT),
            psychologist_id=seeded['psychologist'],
            appointment_date=DAY,
            start_time=start,
            duration_minutes=60,
            reason='Consulta',
            now=NOW,
        )

    return attempt


def _stored_intervals(session_factory) -> list[tuple[time, time]]:
    db = session_factory()
    try:
        return [(row.start_time, row.end_time) for row in db.query(Appointment).order_by(Appointment.start_time)]
    finally:
        db.close()


@pytest.mark.parametrize(
    ('first_start', 'second_start'),
    [(time(10, 0), time(10, 0)), (time(10, 0), time(10, 30))],
    ids=['identical-start', 'overlapping-start'],
)
def test_concurrent_bookings_for_one_interval_let_exactly_one_through(
    file_session_factory,
    seeded,
    slow_check,
    first_start: time,
    second_start: time,
) -> None:
    first_student, second_student = seeded['students']

    outcomes = _run_concurrently(
        file_session_factory,
        [
            _booking_attempt(seeded, first_student, first_start),
            _booking_attempt(seeded, second_student, second_start),
        ],
    )

    assert sorted(outcomes) == ['ok', 'rejected']
    assert len(_stored_intervals(file_session_factory)) == 1


def test_concurrent_disjoint_bookings_both_succeed(file_session_factory, seeded, slow_check) -> None:
    first_student, second_student = seeded['students']

    outcomes = _run_concurrently(
        file_session_factory,
        [
            _booking_attempt(seeded, first_student, time(9, 0)),
            _booking_attempt(seeded, second_student, time(11, 0)),
        ],
    )

    assert outcomes == ['ok', 'ok']
    assert _stored_intervals(file_session_factory) == [(time(9, 0), time(10, 0)), (time(11, 0), time(12, 0))]


def test_concurrent_overlapping_schedule_blocks_keep_one(
    file_session_factory,
    seeded,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    original = schedule_store.overlapping_blocks

    def check_then_wait(*args, **kwargs):
        found = original(*args, **kwargs)
        clock.sleep(HOLD_SECONDS)
        return found

    monkeypatch.setattr(schedule_store, 'overlapping_blocks', check_then_wait)
    caller = Caller(user_id=seeded['psychologist'], role=UserRole.PSYCHOLOGIST)

    def create(start: time, end: time):
        spec = BlockSpec(psychologist_id=seeded['psychologist'], date=DAY, start_time=start, end_time=end)
        return lambda db: schedule_store.create_block(db, caller, spec, today=NOW.date())

    outcomes = _run_concurrently(
        file_session_factory,
        [create(time(13, 0), time(15, 0)), create(time(14, 0), time(16, 0))],
    )

    assert sorted(outcomes) == ['ok', 'rejected']
    db = file_session_factory()
    try:
        assert db.query(ScheduleBlock).count() == 2
    finally:
        db.close()
