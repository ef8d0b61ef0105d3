"""Appointment status transitions."""

import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from psych_booking.core import config
from psych_booking.core.caller import Caller
from psych_booking.core.errors import Forbidden, InvalidTransition
from psych_booking.models.appointment import Appointment, AppointmentStatus
from psych_booking.scheduling.appointment_store import get_appointment_for
from psych_booking.scheduling.booking import normalize_text
from psych_booking.scheduling.events import APPOINTMENT_STATUS_CHANGED, AppointmentEvent, event_bus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def authorize_transition(caller: Caller, target: AppointmentStatus) -> None:
    if caller.is_student and target != AppointmentStatus.CANCELLED:
        raise Forbidden('Students can only cancel their appointments.')


def transition_appointment(
    db: Session,
    caller: Caller,
    appointment_id: int,
    target: AppointmentStatus,
    note: str | None = None,
) -> Appointment:
    """Move an appointment to ``target`` with a compare-and-set update.

    The update only matches while the row still has the status that was
    read, so two racing transitions cannot both apply.
    """
    appointment = get_appointment_for(db, caller, appointment_id)
    authorize_transition(caller, target)

    current = appointment.status
    if not can_transition(current, target):
        raise InvalidTransition(f'Cannot move an appointment from {current.value} to {target.value}.')

    values = {'status': target, 'updated_at': datetime.now()}
    if note:
        values['notes'] = f'{appointment.notes}\n{note}' if appointment.notes else note

    result = db.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id, Appointment.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.expire_all()
        latest = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        latest_status = latest.status.value if latest is not None else 'deleted'
        raise InvalidTransition(
            f'Appointment changed concurrently (now {latest_status}); cannot move to {target.value}.'
        )

    db.commit()
    db.refresh(appointment)

    logger.info(
        'Appointment %s moved from %s to %s by user %s',
        appointment_id,
        current.value,
        target.value,
        caller.user_id,
    )
    event_bus.publish(
        AppointmentEvent(
            name=APPOINTMENT_STATUS_CHANGED,
            appointment_id=appointment.id,
            student_id=appointment.student_id,
            psychologist_id=appointment.psychologist_id,
            date=appointment.date,
            start_time=appointment.start_time,
            status=target.value,
            previous_status=current.value,
            actor_id=caller.user_id,
            note=note,
        )
    )
    return appointment


def confirm_appointment(db: Session, caller: Caller, appointment_id: int) -> Appointment:
    return transition_appointment(db, caller, appointment_id, AppointmentStatus.CONFIRMED)


def cancel_appointment(db: Session, caller: Caller, appointment_id: int, reason: str | None = None) -> Appointment:
    reason = normalize_text(reason, config.MAX_REASON_LENGTH, 'Reason')
    note = f'Cancelled: {reason}' if reason else None
    return transition_appointment(db, caller, appointment_id, AppointmentStatus.CANCELLED, note=note)


def complete_appointment(db: Session, caller: Caller, appointment_id: int) -> Appointment:
    return transition_appointment(db, caller, appointment_id, AppointmentStatus.COMPLETED)


def mark_no_show(db: Session, caller: Caller, appointment_id: int) -> Appointment:
    return transition_appointment(db, caller, appointment_id, AppointmentStatus.NO_SHOW)


def reject_appointment(db: Session, caller: Caller, appointment_id: int, reason: str) -> Appointment:
    """Decline a pending request; the slot is released like any cancellation."""
    reason = normalize_text(reason, config.MAX_REASON_LENGTH, 'Rejection reason', required=True)
    if caller.is_student:
        raise Forbidden('Only staff can reject appointment requests.')

    appointment = get_appointment_for(db, caller, appointment_id)
    if appointment.status != AppointmentStatus.PENDING:
        raise InvalidTransition('Only pending appointments can be rejected.')

    return transition_appointment(
        db,
        caller,
        appointment_id,
        AppointmentStatus.CANCELLED,
        note=f'Rejected by {caller.role.value}. Reason: {reason}',
    )
