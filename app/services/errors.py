"""Typed failures raised by the booking engine.

Each class carries the HTTP status the API layer answers with, so routes never
have to guess whether a failure means "retry", "show conflicts" or "refresh".
"""


class AppointmentError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(AppointmentError):
    """Malformed input: rejected synchronously, never persisted."""

    status_code = 400


class NotFoundError(AppointmentError):
    status_code = 404


class PermissionDeniedError(AppointmentError):
    status_code = 403


class PreconditionError(AppointmentError):
    """The requested transition is not legal from the record's current state."""

    status_code = 409


class ConflictError(AppointmentError):
    """The slot is taken (advisory check or storage uniqueness)."""

    status_code = 409

    def __init__(self, reasons: list[str], detail: str = "Requested time is not available"):
        super().__init__(detail)
        self.reasons = list(reasons)


class StaleStateError(AppointmentError):
    """A conditional write found the record changed since it was read."""

    status_code = 409

    def __init__(self, detail: str = "Appointment was changed by someone else, please refresh and retry"):
        super().__init__(detail)


class UpstreamFailure(AppointmentError):
    """The record store is unreachable; authoritative operations are aborted."""

    status_code = 503
