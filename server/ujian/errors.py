"""
Domain error taxonomy.

Every foreseeable rejection is one of these; the API layer turns them into
``{"detail": ...}`` responses with the matching status code.
"""


class UjianError(Exception):
    """Base class for errors that carry a user-facing reason."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(UjianError):
    status_code = 400


class Unauthenticated(UjianError):
    status_code = 401


class Forbidden(UjianError):
    status_code = 403


class NotFound(UjianError):
    status_code = 404


class Conflict(UjianError):
    status_code = 409


class Unavailable(UjianError):
    """Durable backend required but not connected."""

    status_code = 503


class ExternalServiceDegraded(UjianError):
    """AI grading call failed. Absorbed by the grading engine, never returned to callers."""

    status_code = 502
