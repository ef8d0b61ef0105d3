"""Reads over booked appointments, scoped to the caller."""

from datetime import date

from sqlalchemy.orm import Session

from psych_booking.core.caller import Caller
from psych_booking.core.errors import Forbidden, NotFound
from psych_booking.models.appointment import Appointment, AppointmentStatus


def get_appointment_for(db: Session, caller: Caller, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFound('Appointment not found.')

    if caller.is_student and appointment.student_id != caller.user_id:
        raise Forbidden('Only the student who booked this appointment can access it.')
    if caller.is_psychologist and appointment.psychologist_id != caller.user_id:
        raise Forbidden('This appointment belongs to another psychologist.')

    return appointment


def list_appointments(
    db: Session,
    caller: Caller,
    status: AppointmentStatus | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[Appointment]:
    query = db.query(Appointment)

    if caller.is_student:
        query = query.filter(Appointment.student_id == caller.user_id)
    elif caller.is_psychologist:
        query = query.filter(Appointment.psychologist_id == caller.user_id)

    if status is not None:
        query = query.filter(Appointment.status == status)
    if date_from is not None:
        query = query.filter(Appointment.date >= date_from)
    if date_to is not None:
        query = query.filter(Appointment.date <= date_to)

    return query.order_by(Appointment.date.desc(), Appointment.start_time.desc()).all()
