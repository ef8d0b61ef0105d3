from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from psych_booking.auth.dependencies import get_current_caller
from psych_booking.core.caller import Caller
from psych_booking.core.errors import SchedulingError
from psych_booking.models.session import SessionStatus
from psych_booking.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from psych_booking.services import sessions

router = APIRouter(tags=['sessions'])


class CreateSessionRequest(BaseModel):
    patient_id: int
    psychologist_id: int | None = None
    session_at: datetime
    duration_minutes: int | None = Field(default=None, ge=1, le=480)
    status: SessionStatus | None = None
    session_type: str | None = None
    topics: str | None = None
    objectives: str | None = None
    conclusions: str | None = None
    notes: str | None = None

    class Config:
        extra = 'forbid'


class UpdateSessionRequest(BaseModel):
    session_at: datetime | None = None
    duration_minutes: int | None = Field(default=None, ge=1, le=480)
    status: SessionStatus | None = None
    session_type: str | None = None
    topics: str | None = None
    objectives: str | None = None
    conclusions: str | None = None
    notes: str | None = None

    class Config:
        extra = 'forbid'


class SessionResponse(BaseModel):
    id: int
    patient_id: int
    psychologist_id: int
    session_at: datetime
    duration_minutes: int | None = None
    status: SessionStatus
    session_type: str | None = None
    topics: str | None = None
    objectives: str | None = None
    conclusions: str | None = None
    notes: str | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def create_session(
    data: CreateSessionRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    details = data.model_dump(exclude={'patient_id', 'psychologist_id', 'session_at'}, exclude_none=True)
    try:
        return sessions.create_session(
            db,
            caller,
            patient_id=data.patient_id,
            session_at=data.session_at,
            psychologist_id=data.psychologist_id,
            **details,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=list[SessionResponse])
def list_sessions(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return sessions.list_sessions(db, caller)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{session_id}', response_model=SessionResponse)
def update_session(
    session_id: int,
    data: UpdateSessionRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return sessions.update_session(db, caller, session_id, **data.model_dump(exclude_none=True))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
