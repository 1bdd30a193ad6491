"""
core/errors.py
--------------
Service-layer exception taxonomy.

Services raise these; a single exception handler registered in main.py turns
them into the JSON error body every endpoint shares:

    {"code": "<STABLE_CODE>", "message": "<human readable>", "details": {...}}

Routes never build error responses by hand.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Malformed request, or a reference the caller may not use (400)."""

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Could not validate credentials"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Admin privileges required"


class NotFoundError(AppError):
    """Missing, or not visible to the resolved identity (404)."""

    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource already exists"


class ConfigurationError(AppError):
    """The server cannot build a privileged client. Never echoes secrets."""

    status_code = 500
    code = "CONFIG_ERROR"
    default_message = "Server configuration error"


class UpstreamError(AppError):
    """The completion provider call failed before streaming began."""

    status_code = 502
    code = "OPENAI_ERROR"
    default_message = "Error communicating with AI service"
