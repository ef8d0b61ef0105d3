"""User model definitions."""

import enum

from sqlalchemy import Boolean, Column, Enum, Integer, String
from psych_booking.database import Base, enum_values


class UserRole(str, enum.Enum):
    STUDENT = "student"
    PSYCHOLOGIST = "psychologist"
    ADMIN = "admin"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    name = Column(String)
    role = Column(Enum(UserRole, native_enum=False, values_callable=enum_values, length=20), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
