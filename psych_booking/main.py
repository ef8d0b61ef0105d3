import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from psych_booking.core import config
from psych_booking.database import Base, SessionLocal, engine, ensure_appointment_schema
from psych_booking.models import appointment, notification, schedule, session, unavailability, user  # noqa: F401
from psych_booking.routes import (
    appointment_routes,
    auth_routes,
    notification_routes,
    schedule_routes,
    session_routes,
)
from psych_booking.scheduling.events import event_bus
from psych_booking.services.notifications import make_notification_listener

logging.basicConfig(level=config.LOG_LEVEL)
config.validate_runtime_config()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.on_event('startup')
def register_listeners() -> None:
    event_bus.subscribe(make_notification_listener(SessionLocal))


@app.on_event('shutdown')
def unregister_listeners() -> None:
    event_bus.clear()


@app.get('/')
def root():
    return {'status': 'Psychology Booking API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(schedule_routes.router, prefix='/schedule')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(session_routes.router, prefix='/sessions')
app.include_router(notification_routes.router, prefix='/notifications')
