import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./psych_booking.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Availability calculator
SLOT_DEFAULT_GRANULARITY_MINUTES = int(os.getenv("SLOT_DEFAULT_GRANULARITY_MINUTES", "60"))
SLOT_MIN_GRANULARITY_MINUTES = int(os.getenv("SLOT_MIN_GRANULARITY_MINUTES", "5"))
SLOT_MAX_GRANULARITY_MINUTES = int(os.getenv("SLOT_MAX_GRANULARITY_MINUTES", "480"))
AVAILABILITY_INCLUDE_TODAY = _get_bool(os.getenv("AVAILABILITY_INCLUDE_TODAY"), default=True)
AVAILABILITY_MAX_RANGE_DAYS = int(os.getenv("AVAILABILITY_MAX_RANGE_DAYS", "31"))
SCHEDULE_PATTERN_MAX_DAYS = int(os.getenv("SCHEDULE_PATTERN_MAX_DAYS", "93"))

# Booking
BOOKING_MIN_DURATION_MINUTES = int(os.getenv("BOOKING_MIN_DURATION_MINUTES", "30"))
BOOKING_MAX_DURATION_MINUTES = int(os.getenv("BOOKING_MAX_DURATION_MINUTES", "120"))
BOOKING_LOCK_TIMEOUT_MS = int(os.getenv("BOOKING_LOCK_TIMEOUT_MS", "500"))
MAX_REASON_LENGTH = 500
MAX_NOTES_LENGTH = 1000


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SLOT_MIN_GRANULARITY_MINUTES > SLOT_MAX_GRANULARITY_MINUTES:
        raise RuntimeError("SLOT_MIN_GRANULARITY_MINUTES cannot exceed SLOT_MAX_GRANULARITY_MINUTES.")
    if BOOKING_MIN_DURATION_MINUTES > BOOKING_MAX_DURATION_MINUTES:
        raise RuntimeError("BOOKING_MIN_DURATION_MINUTES cannot exceed BOOKING_MAX_DURATION_MINUTES.")
