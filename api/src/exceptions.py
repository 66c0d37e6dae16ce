"""
Domain exceptions for the tour booking API.

Every failure a client is expected to see is an ``AppError`` subclass that
carries an ``ErrorKind``, an HTTP status code and a safe message. Anything
else reaching the error handlers is treated as ``ErrorKind.UNKNOWN`` and
masked (see ``api.src.middleware.errors``).
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Classification used by the error normalization layer."""

    VALIDATION = "validation_error"
    DUPLICATE_KEY = "duplicate_key_error"
    CAST = "cast_error"
    TOKEN_INVALID = "token_invalid"
    TOKEN_EXPIRED = "token_expired"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    OPERATIONAL = "operational_other"
    UNKNOWN = "unknown"


class AppError(Exception):
    """
    Base class for operational (expected, client-facing) errors.

    Args:
        message: Safe, client-facing message
        status_code: HTTP status code
        details: Extra diagnostic data, only exposed in development mode
    """

    kind: ErrorKind = ErrorKind.OPERATIONAL
    default_status_code: int = 500
    is_operational: bool = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code or self.default_status_code
        self.details = details or {}

    @property
    def status(self) -> str:
        """'fail' for client errors, 'error' for server errors."""
        return "fail" if 400 <= self.status_code < 500 else "error"


class OperationalError(AppError):
    """Expected failure that doesn't fit a more specific kind."""

    kind = ErrorKind.OPERATIONAL


class ValidationError(AppError):
    """
    Entity failed schema validation.

    ``errors`` maps field names to human readable messages.
    """

    kind = ErrorKind.VALIDATION
    default_status_code = 400

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = dict(errors)
        if message is None:
            message = "Invalid input data. " + ". ".join(self.errors.values())
        super().__init__(message, details={"errors": self.errors})


class DuplicateKeyError(AppError):
    """A unique index rejected the write."""

    kind = ErrorKind.DUPLICATE_KEY
    default_status_code = 400

    def __init__(self, key_value: Dict[str, Any]):
        self.key_value = dict(key_value)
        value = ", ".join(str(v) for v in self.key_value.values())
        super().__init__(
            f"Duplicate field value: {value}. Please use another value!",
            details={"keyValue": self.key_value},
        )


class CastError(AppError):
    """A value could not be cast to the type its field requires."""

    kind = ErrorKind.CAST
    default_status_code = 400

    def __init__(self, path: str, value: Any):
        self.path = path
        self.value = value
        super().__init__(f"Invalid {path}: {value}", details={"path": path, "value": value})


class TokenInvalidError(AppError):
    kind = ErrorKind.TOKEN_INVALID
    default_status_code = 401

    def __init__(self, message: str = "Invalid token. Please log in again"):
        super().__init__(message)


class TokenExpiredError(AppError):
    kind = ErrorKind.TOKEN_EXPIRED
    default_status_code = 401

    def __init__(self, message: str = "Your token has expired. Please log in again!"):
        super().__init__(message)


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    default_status_code = 404

    def __init__(self, message: str = "No document found with that ID"):
        super().__init__(message)


class UnauthorizedError(AppError):
    kind = ErrorKind.UNAUTHORIZED
    default_status_code = 401


class ForbiddenError(AppError):
    kind = ErrorKind.FORBIDDEN
    default_status_code = 403

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(message)
