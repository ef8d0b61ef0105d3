"""Shared reads used by the availability, booking and schedule modules."""

from datetime import date

from sqlalchemy.orm import Session

from psych_booking.core.errors import NotFound
from psych_booking.models.appointment import OCCUPYING_STATUSES, Appointment
from psych_booking.models.schedule import ScheduleBlock
from psych_booking.models.unavailability import Unavailability
from psych_booking.models.user import User, UserRole
from psych_booking.scheduling.intervals import MINUTES_PER_DAY, Interval, to_minutes


def get_active_user(db: Session, user_id: int, role: UserRole) -> User:
    user = db.query(User).filter(
        User.id == user_id,
        User.role == role,
        User.is_active.is_(True),
    ).first()

    if user is None:
        label = 'Psychologist' if role == UserRole.PSYCHOLOGIST else role.value.capitalize()
        raise NotFound(f'{label} {user_id} not found or inactive.')

    return user


def get_psychologist(db: Session, psychologist_id: int) -> User:
    return get_active_user(db, psychologist_id, UserRole.PSYCHOLOGIST)


def get_student(db: Session, student_id: int) -> User:
    return get_active_user(db, student_id, UserRole.STUDENT)


def bookable_blocks(db: Session, psychologist_id: int, date_from: date, date_to: date) -> list[ScheduleBlock]:
    return db.query(ScheduleBlock).filter(
        ScheduleBlock.psychologist_id == psychologist_id,
        ScheduleBlock.date >= date_from,
        ScheduleBlock.date <= date_to,
        ScheduleBlock.is_available.is_(True),
        ScheduleBlock.is_blocked.is_(False),
    ).order_by(ScheduleBlock.date.asc(), ScheduleBlock.start_time.asc()).all()


def occupying_appointments(
    db: Session,
    psychologist_id: int,
    date_from: date,
    date_to: date,
) -> list[Appointment]:
    return db.query(Appointment).filter(
        Appointment.psychologist_id == psychologist_id,
        Appointment.date >= date_from,
        Appointment.date <= date_to,
        Appointment.status.in_(OCCUPYING_STATUSES),
    ).order_by(Appointment.date.asc(), Appointment.start_time.asc()).all()


def unavailabilities(db: Session, psychologist_id: int, date_from: date, date_to: date) -> list[Unavailability]:
    return db.query(Unavailability).filter(
        Unavailability.psychologist_id == psychologist_id,
        Unavailability.date >= date_from,
        Unavailability.date <= date_to,
    ).all()


def block_interval(block: ScheduleBlock) -> Interval:
    return to_minutes(block.start_time), to_minutes(block.end_time)


def appointment_interval(appointment: Appointment) -> Interval:
    return to_minutes(appointment.start_time), to_minutes(appointment.end_time)


def unavailability_interval(record: Unavailability) -> Interval:
    start = to_minutes(record.start_time) if record.start_time is not None else 0
    end = to_minutes(record.end_time) if record.end_time is not None else MINUTES_PER_DAY
    return start, end
