"""Appointment model definitions."""

import enum

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Time, func, text
from psych_booking.database import ACTIVE_APPOINTMENT_PREDICATE, Base, enum_values


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


TERMINAL_STATUSES = frozenset({
    AppointmentStatus.CANCELLED,
    AppointmentStatus.COMPLETED,
    AppointmentStatus.NO_SHOW,
})

# Every status except cancelled keeps its interval occupied.
OCCUPYING_STATUSES = tuple(status for status in AppointmentStatus if status != AppointmentStatus.CANCELLED)


class Appointment(Base):
    """Represents a booked appointment between a student and a psychologist."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_psychologist_date", "psychologist_id", "date", "start_time"),
        Index("idx_appointments_student_date", "student_id", "date"),
        Index(
            "uq_appointments_active_slot",
            "psychologist_id",
            "date",
            "start_time",
            unique=True,
            sqlite_where=text(ACTIVE_APPOINTMENT_PREDICATE),
            postgresql_where=text(ACTIVE_APPOINTMENT_PREDICATE),
        ),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    psychologist_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(
        Enum(AppointmentStatus, native_enum=False, values_callable=enum_values, length=20),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )
    reason = Column(String, nullable=False)
    notes = Column(String)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
