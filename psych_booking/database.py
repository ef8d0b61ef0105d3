from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from psych_booking.core import config


def _connect_args(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(config.DATABASE_URL, connect_args=_connect_args(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False

ACTIVE_APPOINTMENT_PREDICATE = "status <> 'cancelled'"


def ensure_appointment_schema() -> None:
    """Add the active-slot unique index to an appointments table created before it existed."""
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                    'ON appointments(psychologist_id, date, start_time) '
                    f'WHERE {ACTIVE_APPOINTMENT_PREDICATE}'
                )
            )

        _appointment_schema_checked = True


def enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]
