"""Schedule block model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Time, func
from psych_booking.database import Base


class ScheduleBlock(Base):
    """A window a psychologist offers (or blocks) on a given date."""
    __tablename__ = "schedules"
    __table_args__ = (
        Index("idx_schedules_psychologist_date", "psychologist_id", "date"),
        Index("idx_schedules_date_flags", "date", "is_available", "is_blocked"),
    )

    id = Column(Integer, primary_key=True)
    psychologist_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    is_blocked = Column(Boolean, default=False, nullable=False)
    block_reason = Column(String)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def is_bookable(self) -> bool:
        return bool(self.is_available) and not self.is_blocked
