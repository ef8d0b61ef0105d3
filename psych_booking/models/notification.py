"""Notification model definitions."""

import enum
from dataclasses import dataclass

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, func
from psych_booking.database import Base, enum_values


class NotificationType(str, enum.Enum):
    APPOINTMENT = "appointment"
    REMINDER = "reminder"
    STATUS = "status"
    SYSTEM = "system"


class RelatedKind(str, enum.Enum):
    APPOINTMENT = "appointment"
    SESSION = "session"


@dataclass(frozen=True)
class RelatedEntity:
    """Reference to the record a notification is about."""

    kind: RelatedKind
    id: int


class Notification(Base):
    """A message stored for one user."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Enum(NotificationType, native_enum=False, values_callable=enum_values, length=20), nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    related_kind = Column(Enum(RelatedKind, native_enum=False, values_callable=enum_values, length=20))
    related_id = Column(Integer)
    created_at = Column(DateTime, server_default=func.now())

    @property
    def related(self) -> RelatedEntity | None:
        if self.related_kind is None or self.related_id is None:
            return None
        return RelatedEntity(kind=self.related_kind, id=self.related_id)

    @related.setter
    def related(self, value: RelatedEntity | None) -> None:
        if value is None:
            self.related_kind = None
            self.related_id = None
        else:
            self.related_kind = value.kind
            self.related_id = value.id
