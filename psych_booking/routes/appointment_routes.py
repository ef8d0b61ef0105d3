from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from psych_booking.auth.dependencies import get_current_caller
from psych_booking.core import config
from psych_booking.core.caller import Caller
from psych_booking.core.errors import SchedulingError
from psych_booking.models.appointment import AppointmentStatus
from psych_booking.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from psych_booking.scheduling import appointment_store, lifecycle
from psych_booking.scheduling.booking import book_appointment, reschedule_appointment

router = APIRouter(tags=['appointments'])


class CreateAppointmentRequest(BaseModel):
    psychologist_id: int
    appointment_date: date = Field(alias='fecha')
    start_time: time = Field(alias='hora')
    duration_minutes: int = Field(default=60, alias='duracion')
    reason: str = Field(alias='motivo')
    notes: str | None = Field(default=None, alias='notas')
    student_id: int | None = None

    class Config:
        extra = 'forbid'
        populate_by_name = True

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Reason is required.')
        if len(normalized) > config.MAX_REASON_LENGTH:
            raise ValueError(f'Reason must be {config.MAX_REASON_LENGTH} characters or fewer.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_NOTES_LENGTH} characters or fewer.')

        return normalized


class StatusChangeRequest(BaseModel):
    reason: str | None = None

    class Config:
        extra = 'forbid'


class RejectAppointmentRequest(BaseModel):
    reason: str

    class Config:
        extra = 'forbid'


class RescheduleAppointmentRequest(BaseModel):
    appointment_date: date | None = Field(default=None, alias='fecha')
    start_time: time | None = Field(default=None, alias='hora')
    duration_minutes: int | None = Field(default=None, alias='duracion')
    notes: str | None = Field(default=None, alias='notas')

    class Config:
        extra = 'forbid'
        populate_by_name = True


class AppointmentResponse(BaseModel):
    id: int
    student_id: int
    psychologist_id: int
    date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: AppointmentStatus
    reason: str
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return book_appointment(
            db,
            caller,
            psychologist_id=data.psychologist_id,
            appointment_date=data.appointment_date,
            start_time=data.start_time,
            duration_minutes=data.duration_minutes,
            reason=data.reason,
            student_id=data.student_id,
            notes=data.notes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return appointment_store.list_appointments(db, caller, appointment_status, date_from, date_to)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return appointment_store.get_appointment_for(db, caller, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    if data.appointment_date is None and data.start_time is None and data.duration_minutes is None and data.notes is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Provide fecha, hora, duracion or notas to update.',
        )

    ensure_database_ready()

    try:
        return reschedule_appointment(
            db,
            caller,
            appointment_id,
            appointment_date=data.appointment_date,
            start_time=data.start_time,
            duration_minutes=data.duration_minutes,
            notes=data.notes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


def _run_transition(db: Session, action, *args):
    ensure_database_ready()

    try:
        return action(db, *args)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    return _run_transition(db, lifecycle.confirm_appointment, caller, appointment_id)


@router.patch('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: StatusChangeRequest | None = None,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    reason = data.reason if data is not None else None
    return _run_transition(db, lifecycle.cancel_appointment, caller, appointment_id, reason)


@router.patch('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    return _run_transition(db, lifecycle.complete_appointment, caller, appointment_id)


@router.patch('/{appointment_id}/no-show', response_model=AppointmentResponse)
def mark_no_show(
    appointment_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    return _run_transition(db, lifecycle.mark_no_show, caller, appointment_id)


@router.patch('/{appointment_id}/reject', response_model=AppointmentResponse)
def reject_appointment(
    appointment_id: int,
    data: RejectAppointmentRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    return _run_transition(db, lifecycle.reject_appointment, caller, appointment_id, data.reason)
