"""Psychological session model definitions."""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, func
from psych_booking.database import Base, enum_values


class SessionStatus(str, enum.Enum):
    SCHEDULED = "Programada"
    HELD = "Realizada"
    CANCELLED = "Cancelada"


class PsychologicalSession(Base):
    """Clinical record of a meeting, kept apart from the booking."""
    __tablename__ = "psychological_sessions"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    psychologist_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_at = Column(DateTime, nullable=False, index=True)
    duration_minutes = Column(Integer)
    status = Column(
        Enum(SessionStatus, native_enum=False, values_callable=enum_values, length=20),
        nullable=False,
        default=SessionStatus.SCHEDULED,
    )
    session_type = Column(String)
    topics = Column(String)
    objectives = Column(String)
    conclusions = Column(String)
    notes = Column(String)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
