"""Service-level exceptions.

Each exception maps to one HTTP status; the handlers registered in
``main.create_app`` render them as ``{"success": false, "error": ..., "code": ...}``.
"""


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code = 500
    code = "internal"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class InvalidArgument(ServiceError):
    """Raised when a field is missing or malformed."""
    status_code = 400
    code = "invalid_argument"


class Unauthenticated(ServiceError):
    """Raised when the request carries no valid credentials."""
    status_code = 401
    code = "unauthenticated"


class Unauthorized(ServiceError):
    """Raised when the caller is authenticated but is the wrong owner or role."""
    status_code = 403
    code = "unauthorized"


class NotFound(ServiceError):
    status_code = 404
    code = "not_found"


class Conflict(ServiceError):
    """Raised when a resource already exists."""
    status_code = 409
    code = "conflict"


class InvalidState(ServiceError):
    """Raised on an illegal lifecycle transition."""
    status_code = 409
    code = "invalid_state"


class Internal(ServiceError):
    status_code = 500
    code = "internal"
