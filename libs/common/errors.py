"""Typed application errors.

Business-rule violations are raised as ``AppError`` subclasses carrying a
human message, a machine-readable ``code`` and the HTTP status to respond
with. ``libs.common.error_handler`` turns them into the uniform
``{"success": false, "message": ..., "code": ...}`` body.
"""

from typing import Any, Optional


class AppError(Exception):
    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def __repr__(self):
        return f"<{type(self).__name__} {self.code} ({self.status_code}): {self.message}>"


class ValidationError(AppError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    default_code = "UNAUTHORIZED"


class PermissionDeniedError(AppError):
    status_code = 403
    default_code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    default_code = "CONFLICT"


class ExternalServiceError(AppError):
    status_code = 502
    default_code = "EXTERNAL_SERVICE_ERROR"
