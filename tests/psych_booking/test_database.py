import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.pool import StaticPool

from psych_booking import database
from psych_booking.models.appointment import Appointment
from psych_booking.models.user import User


def _index_names(engine) -> set[str]:
    return {index['name'] for index in inspect(engine).get_indexes('appointments')}


def test_ensure_appointment_schema_adds_active_slot_index_to_existing_table(monkeypatch: pytest.MonkeyPatch) -> None:
    engine = create_engine('sqlite://', connect_args={'check_same_thread': False}, poolclass=StaticPool)
    database.Base.metadata.create_all(bind=engine, tables=[User.__table__, Appointment.__table__])
    with engine.begin() as connection:
        connection.execute(text('DROP INDEX uq_appointments_active_slot'))
    assert 'uq_appointments_active_slot' not in _index_names(engine)

    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_appointment_schema_checked', False)

    database.ensure_appointment_schema()

    assert 'uq_appointments_active_slot' in _index_names(engine)
    assert database._appointment_schema_checked is True


def test_ensure_appointment_schema_skips_missing_table(monkeypatch: pytest.MonkeyPatch) -> None:
    engine = create_engine('sqlite://', connect_args={'check_same_thread': False}, poolclass=StaticPool)
    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_appointment_schema_checked', False)

    database.ensure_appointment_schema()

    assert 'appointments' not in inspect(engine).get_table_names()
