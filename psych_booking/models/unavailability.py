"""Unavailability model definitions."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Time, func
from psych_booking.database import Base


class Unavailability(Base):
    """A window in which a psychologist takes no bookings.

    A missing start means from the beginning of the day, a missing end means
    until the end of the day; both missing blocks the whole day.
    """
    __tablename__ = "psychologist_unavailabilities"

    id = Column(Integer, primary_key=True)
    psychologist_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time)
    end_time = Column(Time)
    reason = Column(String)
    created_at = Column(DateTime, server_default=func.now())
