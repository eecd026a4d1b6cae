"""
Uniform error type shared by services, webhooks and the HTTP layer.

Services raise an AppError subclass; the exception handlers translate the
carried Error into the response envelope and status code.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorType(str, Enum):
    FAILURE = "Failure"
    VALIDATION = "Validation"
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    UNAUTHORIZED = "Unauthorized"
    FORBIDDEN = "Forbidden"


HTTP_STATUS_BY_ERROR_TYPE = {
    ErrorType.VALIDATION: 400,
    ErrorType.UNAUTHORIZED: 401,
    ErrorType.FORBIDDEN: 403,
    ErrorType.NOT_FOUND: 404,
    ErrorType.CONFLICT: 409,
    ErrorType.FAILURE: 500,
}


@dataclass(frozen=True)
class Error:
    code: str
    message: str
    type: ErrorType = ErrorType.FAILURE

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_ERROR_TYPE[self.type]


class AppError(Exception):
    """Base class for all expected application errors."""

    error_type = ErrorType.FAILURE
    default_code = "failure"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.error = Error(code=code or self.default_code, message=message, type=self.error_type)

    @property
    def status_code(self) -> int:
        return self.error.status_code


class ValidationError(AppError):
    error_type = ErrorType.VALIDATION
    default_code = "validation_error"


class NotFoundError(AppError):
    error_type = ErrorType.NOT_FOUND
    default_code = "not_found"


class ConflictError(AppError):
    error_type = ErrorType.CONFLICT
    default_code = "conflict"


class ConcurrencyConflictError(ConflictError):
    """Raised when a versioned row changed between read and write."""

    default_code = "concurrency_conflict"


class UnauthorizedError(AppError):
    error_type = ErrorType.UNAUTHORIZED
    default_code = "unauthorized"


class ForbiddenError(AppError):
    error_type = ErrorType.FORBIDDEN
    default_code = "forbidden"
