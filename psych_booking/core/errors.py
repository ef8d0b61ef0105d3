"""Error taxonomy raised by the scheduling core.

The HTTP layer maps each class to a status code; nothing here knows about
FastAPI.
"""


class SchedulingError(Exception):
    """Base class for every per-request failure of the scheduling core."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Malformed input (bad time, duration, range or text)."""

    status_code = 400


class NotFound(SchedulingError):
    """Unknown or inactive entity reference."""

    status_code = 404


class Forbidden(SchedulingError):
    """The caller may not act on this resource."""

    status_code = 403


class OverlapError(SchedulingError):
    """A schedule block would overlap another block of the same day."""

    status_code = 409


class SlotUnavailable(SchedulingError):
    """The requested interval is no longer bookable."""

    status_code = 409


class InvalidTransition(SchedulingError):
    """The appointment state machine does not allow the requested move."""

    status_code = 422
