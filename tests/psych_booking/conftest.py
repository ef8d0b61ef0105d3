import os
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from psych_booking.core.caller import Caller  # noqa: E402
from psych_booking.database import Base  # noqa: E402
from psych_booking.models import appointment, notification, schedule, session, unavailability  # noqa: E402,F401
from psych_booking.models.schedule import ScheduleBlock  # noqa: E402
from psych_booking.models.user import User, UserRole  # noqa: E402
from psych_booking.scheduling.events import event_bus  # noqa: E402


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clear_event_bus():
    event_bus.clear()
    yield
    event_bus.clear()


@pytest.fixture
def people(db):
    """One psychologist, two students, an admin and an inactive psychologist."""
    users = {
        'psychologist': User(email='ana@uni.edu', name='Ana', role=UserRole.PSYCHOLOGIST),
        'other_psychologist': User(email='luis@uni.edu', name='Luis', role=UserRole.PSYCHOLOGIST),
        'student': User(email='sam@uni.edu', name='Sam', role=UserRole.STUDENT),
        'other_student': User(email='kim@uni.edu', name='Kim', role=UserRole.STUDENT),
        'admin': User(email='admin@uni.edu', name='Admin', role=UserRole.ADMIN),
        'inactive': User(email='old@uni.edu', name='Old', role=UserRole.PSYCHOLOGIST, is_active=False),
    }
    db.add_all(users.values())
    db.commit()
    return {key: user.id for key, user in users.items()}


@pytest.fixture
def callers(people):
    roles = {
        'psychologist': UserRole.PSYCHOLOGIST,
        'other_psychologist': UserRole.PSYCHOLOGIST,
        'student': UserRole.STUDENT,
        'other_student': UserRole.STUDENT,
        'admin': UserRole.ADMIN,
    }
    return {key: Caller(user_id=people[key], role=role) for key, role in roles.items()}


@pytest.fixture
def add_block(db):
    def _add_block(psychologist_id: int, day: date, start: time, end: time, **flags) -> ScheduleBlock:
        block = ScheduleBlock(psychologist_id=psychologist_id, date=day, start_time=start, end_time=end, **flags)
        db.add(block)
        db.commit()
        db.refresh(block)
        return block

    return _add_block
