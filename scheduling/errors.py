class SchedulingError(Exception):
    """Base error; carries the HTTP status the API layer renders it with."""

    status_code = 500

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFound(SchedulingError):
    status_code = 404


class Forbidden(SchedulingError):
    status_code = 403


class Conflict(SchedulingError):
    status_code = 409


class ValidationError(SchedulingError):
    status_code = 400


class DependencyError(SchedulingError):
    """Store or gateway unreachable."""

    status_code = 503
