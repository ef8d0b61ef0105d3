"""Clinical session records.

Plain CRUD; sessions are not booked through the slot path.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from psych_booking.core.caller import Caller
from psych_booking.core.errors import Forbidden, NotFound, ValidationError
from psych_booking.models.session import PsychologicalSession, SessionStatus
from psych_booking.scheduling import queries

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('session_at', 'duration_minutes', 'status', 'session_type', 'topics', 'objectives', 'conclusions', 'notes')


def _resolve_psychologist(caller: Caller, psychologist_id: int | None) -> int:
    if caller.is_psychologist:
        if psychologist_id is not None and psychologist_id != caller.user_id:
            raise Forbidden('Psychologists can only record their own sessions.')
        return caller.user_id
    if caller.is_admin:
        if psychologist_id is None:
            raise ValidationError('psychologist_id is required when an admin records a session.')
        return psychologist_id
    raise Forbidden('Only staff can record sessions.')


def create_session(
    db: Session,
    caller: Caller,
    patient_id: int,
    session_at: datetime,
    psychologist_id: int | None = None,
    **details,
) -> PsychologicalSession:
    psychologist_id = _resolve_psychologist(caller, psychologist_id)
    queries.get_student(db, patient_id)
    queries.get_psychologist(db, psychologist_id)

    record = PsychologicalSession(
        patient_id=patient_id,
        psychologist_id=psychologist_id,
        session_at=session_at,
        status=details.pop('status', None) or SessionStatus.SCHEDULED,
        **{key: value for key, value in details.items() if key in EDITABLE_FIELDS},
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info('Session %s recorded for patient %s by psychologist %s', record.id, patient_id, psychologist_id)
    return record


def list_sessions(db: Session, caller: Caller) -> list[PsychologicalSession]:
    query = db.query(PsychologicalSession)
    if caller.is_student:
        query = query.filter(PsychologicalSession.patient_id == caller.user_id)
    elif caller.is_psychologist:
        query = query.filter(PsychologicalSession.psychologist_id == caller.user_id)
    return query.order_by(PsychologicalSession.session_at.desc()).all()


def update_session(db: Session, caller: Caller, session_id: int, **changes) -> PsychologicalSession:
    record = db.query(PsychologicalSession).filter(PsychologicalSession.id == session_id).first()
    if record is None:
        raise NotFound('Session not found.')
    if caller.is_student or (caller.is_psychologist and record.psychologist_id != caller.user_id):
        raise Forbidden('Only the psychologist of this session or an admin can edit it.')

    for key, value in changes.items():
        if key in EDITABLE_FIELDS and value is not None:
            setattr(record, key, value)

    db.commit()
    db.refresh(record)
    return record
