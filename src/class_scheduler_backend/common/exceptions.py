"""
This file contains custom, application-specific exceptions.

Each carries the HTTP status an outer API layer should translate it to.
"""

class SchedulingError(Exception):
    """Base class for all scheduling errors surfaced to the caller."""
    status_code: int = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Raised for malformed times, inverted ranges, out-of-domain days or unsupported subjects."""
    status_code = 422


class NotFoundError(SchedulingError):
    """Raised when a slot, class, assignment, tutor or cancellation does not exist."""
    status_code = 404


class AuthorizationError(SchedulingError):
    """Raised when the actor is not the class owner or the assigned tutor."""
    status_code = 403


class ConflictError(SchedulingError):
    """Raised for overlapping slots or a duplicate cancellation of the same week."""
    status_code = 409
