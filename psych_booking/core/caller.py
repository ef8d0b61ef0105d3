from dataclasses import dataclass

from psych_booking.models.user import UserRole


@dataclass(frozen=True)
class Caller:
    """Identity of whoever issues a core operation."""

    user_id: int
    role: UserRole

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    @property
    def is_psychologist(self) -> bool:
        return self.role == UserRole.PSYCHOLOGIST

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.PSYCHOLOGIST, UserRole.ADMIN)
