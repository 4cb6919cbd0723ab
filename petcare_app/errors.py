"""
Error taxonomy for the task lifecycle and authorization gate.

Every failure a caller can observe is one of the ``ServiceError``
subclasses below.  Each carries a stable ``kind`` string and the HTTP
status the API layer renders it with, so route handlers never need to map
exceptions by hand.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors that are translated into API responses."""

    kind: str = "error"
    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, object]:
        return {"success": False, "error": self.kind, "message": self.message}


class ValidationError(ServiceError):
    """Malformed or missing input."""

    kind = "validation_error"
    status_code = 400
    default_message = "Invalid request"


class UnauthenticatedError(ServiceError):
    """Missing, malformed, invalid or expired credential."""

    kind = "unauthenticated"
    status_code = 401
    default_message = "Not authorized"


class ForbiddenError(ServiceError):
    """Authenticated, but not permitted to perform the operation."""

    kind = "forbidden"
    status_code = 403
    default_message = "Access denied. Insufficient permissions."


class NotFoundError(ServiceError):
    kind = "not_found"
    status_code = 404
    default_message = "Resource not found"


class InvalidStateError(ServiceError):
    """Operation is not legal for the task's current status or applicants."""

    kind = "invalid_state"
    status_code = 409
    default_message = "Operation not allowed in the current task state"


class InternalError(ServiceError):
    """
    Unexpected failure in a collaborator (storage, etc.).

    The detail passed in is kept for server-side logging only; callers
    always receive ``public_message``.
    """

    kind = "internal_error"
    status_code = 500
    default_message = "Internal server error"
    public_message = "Internal server error"

    def to_dict(self) -> dict[str, object]:
        return {"success": False, "error": self.kind, "message": self.public_message}
