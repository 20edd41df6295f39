"""
Error taxonomy for the tracker.

Services raise these; the exception handlers in ``tracker.app.main`` turn
them into JSON (API/XHR callers) or plain-text / redirect responses
(browser callers).
"""

from typing import Optional


class TrackerError(Exception):
    """Base class for all expected, user-facing failures."""

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(TrackerError):
    """Malformed or out-of-range request fields."""

    status_code = 400
    error = "invalid_input"


class Unauthenticated(TrackerError):
    """No session, an expired session, or a session for a revoked user."""

    status_code = 401
    error = "unauthenticated"

    def __init__(self, message: str = "Authentication required", destroy_session: bool = False):
        super().__init__(message)
        self.destroy_session = destroy_session


class Unauthorized(TrackerError):
    """Authenticated, but the role is not allowed on this route."""

    status_code = 403
    error = "insufficient_permissions"

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class NotFound(TrackerError):
    status_code = 404
    error = "not_found"


class Conflict(TrackerError):
    """Unique constraint violation (duplicate partner code, protocol code...)."""

    status_code = 400
    error = "conflict"


class InternalError(TrackerError):
    """Persistence or rendering failure."""

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str = "Database error", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
