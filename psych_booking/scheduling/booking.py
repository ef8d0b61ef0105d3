"""Atomic appointment booking and rescheduling.

The availability check is repeated inside the booking transaction after
the day is locked. PostgreSQL locks the psychologist's schedule rows for
that date; SQLite has no row locks, so a no-op write takes the database
write lock before anything is read. The partial unique index on
``(psychologist_id, date, start_time)`` for non-cancelled rows catches
whatever slips past the lock.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, time

from sqlalchemy import Date, bindparam, text, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from psych_booking.core import config
from psych_booking.core.caller import Caller
from psych_booking.core.errors import Forbidden, InvalidTransition, SchedulingError, SlotUnavailable, ValidationError
from psych_booking.models.appointment import OCCUPYING_STATUSES, Appointment, AppointmentStatus
from psych_booking.models.schedule import ScheduleBlock
from psych_booking.scheduling import queries
from psych_booking.scheduling.appointment_store import get_appointment_for
from psych_booking.scheduling.events import (
    APPOINTMENT_CREATED,
    APPOINTMENT_RESCHEDULED,
    AppointmentEvent,
    event_bus,
)
from psych_booking.scheduling.intervals import MINUTES_PER_DAY, Interval, contains, from_minutes, overlaps, to_minutes

logger = logging.getLogger(__name__)

LOCK_NOT_AVAILABLE_SQLSTATE = '55P03'

RESCHEDULABLE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})

# Touches no data but makes SQLite take its write lock for the transaction.
_SQLITE_DAY_LOCK = text(
    'UPDATE schedules SET psychologist_id = psychologist_id '
    'WHERE psychologist_id = :psychologist_id AND date = :day'
).bindparams(bindparam('day', type_=Date))


def normalize_text(value: str | None, max_length: int, field_name: str, required: bool = False) -> str | None:
    normalized = (value or '').strip()
    if not normalized:
        if required:
            raise ValidationError(f'{field_name} is required.')
        return None
    if len(normalized) > max_length:
        raise ValidationError(f'{field_name} must be {max_length} characters or fewer.')
    return normalized


def validate_booking_window(
    appointment_date: date,
    start_time: time,
    duration_minutes: int,
    now: datetime,
) -> Interval:
    if not config.BOOKING_MIN_DURATION_MINUTES <= duration_minutes <= config.BOOKING_MAX_DURATION_MINUTES:
        raise ValidationError(
            f'Duration must be between {config.BOOKING_MIN_DURATION_MINUTES} '
            f'and {config.BOOKING_MAX_DURATION_MINUTES} minutes.'
        )

    if datetime.combine(appointment_date, start_time) <= now:
        raise ValidationError('Appointments must be scheduled in the future.')

    start = to_minutes(start_time)
    end = start + duration_minutes
    if end >= MINUTES_PER_DAY:
        raise ValidationError('Appointments cannot extend past midnight.')

    return start, end


def resolve_student(caller: Caller, student_id: int | None) -> int:
    if caller.is_student:
        if student_id is not None and student_id != caller.user_id:
            raise Forbidden('Students can only book appointments for themselves.')
        return caller.user_id

    if student_id is None:
        raise ValidationError('student_id is required when staff book an appointment.')
    return student_id


def authorize_booking(caller: Caller, psychologist_id: int) -> None:
    if caller.is_psychologist and psychologist_id != caller.user_id:
        raise Forbidden('Psychologists can only book appointments into their own schedule.')


def lock_day(db: Session, psychologist_id: int, appointment_date: date) -> list[ScheduleBlock]:
    """Lock and return every schedule row of the psychologist on that date.

    Must run before the reads it protects. The lock lasts until the
    transaction commits or rolls back.
    """
    dialect = db.get_bind().dialect.name
    if dialect == 'postgresql':
        db.execute(text(f'SET LOCAL lock_timeout = {int(config.BOOKING_LOCK_TIMEOUT_MS)}'))
    elif dialect == 'sqlite':
        db.execute(_SQLITE_DAY_LOCK, {'psychologist_id': psychologist_id, 'day': appointment_date})

    return db.query(ScheduleBlock).filter(
        ScheduleBlock.psychologist_id == psychologist_id,
        ScheduleBlock.date == appointment_date,
    ).order_by(ScheduleBlock.start_time.asc()).with_for_update().all()


def find_conflicting_appointments(
    db: Session,
    psychologist_id: int,
    appointment_date: date,
    requested: Interval,
    exclude_id: int | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.psychologist_id == psychologist_id,
        Appointment.date == appointment_date,
        Appointment.status.in_(OCCUPYING_STATUSES),
        Appointment.start_time < from_minutes(requested[1]),
        Appointment.end_time > from_minutes(requested[0]),
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.all()


def ensure_interval_bookable(
    db: Session,
    day_blocks: list[ScheduleBlock],
    psychologist_id: int,
    appointment_date: date,
    requested: Interval,
    exclude_id: int | None = None,
) -> None:
    if not any(block.is_bookable and contains(queries.block_interval(block), requested) for block in day_blocks):
        raise SlotUnavailable('The requested time is not within an available schedule block.')

    for record in queries.unavailabilities(db, psychologist_id, appointment_date, appointment_date):
        if overlaps(queries.unavailability_interval(record), requested):
            raise SlotUnavailable('The psychologist is unavailable at the requested time.')

    if find_conflicting_appointments(db, psychologist_id, appointment_date, requested, exclude_id=exclude_id):
        raise SlotUnavailable('This time is already booked.')


def _is_lock_timeout(exc: OperationalError) -> bool:
    original = exc.orig
    code = getattr(original, 'pgcode', None) or getattr(original, 'sqlstate', None)
    return code == LOCK_NOT_AVAILABLE_SQLSTATE


@contextmanager
def slot_transaction(db: Session, psychologist_id: int, appointment_date: date, start_time: time):
    """Commit the enclosed writes or roll back and report why the slot was lost."""
    try:
        yield
        db.commit()
    except SchedulingError as exc:
        db.rollback()
        logger.warning(
            'Booking rejected for psychologist %s on %s at %s: %s',
            psychologist_id,
            appointment_date,
            start_time,
            exc.message,
        )
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning('Lost booking race for psychologist %s on %s at %s', psychologist_id, appointment_date, start_time)
        raise SlotUnavailable('This time was just booked by someone else.') from exc
    except OperationalError as exc:
        db.rollback()
        if _is_lock_timeout(exc):
            raise SlotUnavailable('Another booking for this day is in progress. Try again.') from exc
        raise


def book_appointment(
    db: Session,
    caller: Caller,
    psychologist_id: int,
    appointment_date: date,
    start_time: time,
    duration_minutes: int,
    reason: str,
    student_id: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    now = now or datetime.now()
    start_time = start_time.replace(second=0, microsecond=0)

    student_id = resolve_student(caller, student_id)
    authorize_booking(caller, psychologist_id)
    requested = validate_booking_window(appointment_date, start_time, duration_minutes, now)
    reason = normalize_text(reason, config.MAX_REASON_LENGTH, 'Reason', required=True)
    notes = normalize_text(notes, config.MAX_NOTES_LENGTH, 'Notes')

    queries.get_student(db, student_id)
    queries.get_psychologist(db, psychologist_id)

    initial_status = AppointmentStatus.CONFIRMED if caller.is_staff else AppointmentStatus.PENDING

    with slot_transaction(db, psychologist_id, appointment_date, start_time):
        day_blocks = lock_day(db, psychologist_id, appointment_date)
        ensure_interval_bookable(db, day_blocks, psychologist_id, appointment_date, requested)

        appointment = Appointment(
            student_id=student_id,
            psychologist_id=psychologist_id,
            date=appointment_date,
            start_time=from_minutes(requested[0]),
            end_time=from_minutes(requested[1]),
            duration_minutes=duration_minutes,
            status=initial_status,
            reason=reason,
            notes=notes,
        )
        db.add(appointment)
        db.flush()

    db.refresh(appointment)
    logger.info(
        'Appointment %s booked: student %s with psychologist %s on %s at %s (%s)',
        appointment.id,
        student_id,
        psychologist_id,
        appointment_date,
        appointment.start_time,
        appointment.status.value,
    )

    event_bus.publish(
        AppointmentEvent(
            name=APPOINTMENT_CREATED,
            appointment_id=appointment.id,
            student_id=appointment.student_id,
            psychologist_id=appointment.psychologist_id,
            date=appointment.date,
            start_time=appointment.start_time,
            status=appointment.status.value,
            actor_id=caller.user_id,
        )
    )
    return appointment


def reschedule_appointment(
    db: Session,
    caller: Caller,
    appointment_id: int,
    appointment_date: date | None = None,
    start_time: time | None = None,
    duration_minutes: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    """Move a pending or confirmed appointment to another free interval.

    Fields left as ``None`` keep their current value; the status does not
    change. The new interval goes through the same locked check as a new
    booking, with the appointment's own row ignored.
    """
    now = now or datetime.now()
    appointment = get_appointment_for(db, caller, appointment_id)

    current = appointment.status
    if current not in RESCHEDULABLE_STATUSES:
        raise InvalidTransition(f'Cannot reschedule an appointment that is {current.value}.')

    previous_date, previous_start = appointment.date, appointment.start_time
    new_date = appointment_date if appointment_date is not None else appointment.date
    new_start = (start_time if start_time is not None else appointment.start_time).replace(second=0, microsecond=0)
    new_duration = duration_minutes if duration_minutes is not None else appointment.duration_minutes
    requested = validate_booking_window(new_date, new_start, new_duration, now)

    values = {
        'date': new_date,
        'start_time': from_minutes(requested[0]),
        'end_time': from_minutes(requested[1]),
        'duration_minutes': new_duration,
        'updated_at': datetime.now(),
    }
    if notes is not None:
        values['notes'] = normalize_text(notes, config.MAX_NOTES_LENGTH, 'Notes')

    psychologist_id = appointment.psychologist_id
    with slot_transaction(db, psychologist_id, new_date, new_start):
        day_blocks = lock_day(db, psychologist_id, new_date)
        ensure_interval_bookable(db, day_blocks, psychologist_id, new_date, requested, exclude_id=appointment_id)

        result = db.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id, Appointment.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition('Appointment changed concurrently; reload it before rescheduling.')

    db.refresh(appointment)
    logger.info(
        'Appointment %s rescheduled from %s %s to %s %s by user %s',
        appointment_id,
        previous_date,
        previous_start,
        appointment.date,
        appointment.start_time,
        caller.user_id,
    )

    event_bus.publish(
        AppointmentEvent(
            name=APPOINTMENT_RESCHEDULED,
            appointment_id=appointment.id,
            student_id=appointment.student_id,
            psychologist_id=appointment.psychologist_id,
            date=appointment.date,
            start_time=appointment.start_time,
            status=current.value,
            previous_status=current.value,
            actor_id=caller.user_id,
            note=f'Previously {previous_date:%d/%m/%Y} at {previous_start:%H:%M}.',
        )
    )
    return appointment
