"""
Error normalization for FastAPI.

Provides:
- Classification of any exception into an ``AppError`` (or Unknown)
- Rendering to the ``{status, message}`` envelope
- Development mode payloads carrying the error kind, details and stack
- Exception handler registration for domain and framework errors
"""

import traceback
from typing import Any, Dict, Optional, Tuple

import structlog
from bson import ObjectId
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.src.exceptions import (
    AppError,
    ErrorKind,
    NotFoundError,
    OperationalError,
    UnauthorizedError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

GENERIC_MESSAGE = "Something went wrong!"
RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again in an hour!"


def _field_path(loc) -> str:
    # Drop the leading "body"/"query"/"path" segment.
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts) or "body"


class ErrorNormalizer:
    """
    Maps exceptions to HTTP responses.

    The verbosity mode is fixed at construction time: in development the
    payload includes the error kind, details and stack trace; otherwise only
    ``status`` and ``message`` are returned and unknown errors are masked.
    """

    def __init__(self, environment: str = "production"):
        self.environment = environment
        self.debug = environment == "development"

    def classify(self, exc: BaseException, path: str = "") -> Optional[AppError]:
        """
        Convert ``exc`` to an operational ``AppError``.

        Args:
            exc: Raised exception
            path: Request path, used for the unknown-route message

        Returns:
            The operational error, or None for unknown (programming) errors
        """
        if isinstance(exc, AppError):
            return exc

        if isinstance(exc, RequestValidationError):
            errors = {}
            for err in exc.errors():
                errors.setdefault(_field_path(err.get("loc", ())), err.get("msg", "Invalid value"))
            return ValidationError(errors)

        if isinstance(exc, RateLimitExceeded):
            return OperationalError(RATE_LIMIT_MESSAGE, status.HTTP_429_TOO_MANY_REQUESTS)

        if isinstance(exc, StarletteHTTPException):
            if exc.status_code == status.HTTP_404_NOT_FOUND:
                return NotFoundError(f"Can't find {path} on this server!")
            if exc.status_code == status.HTTP_401_UNAUTHORIZED:
                return UnauthorizedError(str(exc.detail))
            return OperationalError(str(exc.detail), exc.status_code)

        return None

    def payload(self, exc: BaseException, path: str = "") -> Tuple[int, Dict[str, Any]]:
        """Build ``(status_code, body)`` for ``exc``."""
        error = self.classify(exc, path)

        if error is None:
            logger.error(
                "unhandled_exception",
                path=path,
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=exc,
            )
            if not self.debug:
                return 500, {"status": "error", "message": GENERIC_MESSAGE}
            return 500, {
                "status": "error",
                "error": {"kind": ErrorKind.UNKNOWN.value, "type": type(exc).__name__},
                "message": str(exc) or GENERIC_MESSAGE,
                "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            }

        if error.status_code >= 500:
            logger.error("operational_error", path=path, kind=error.kind.value, message=error.message)
        else:
            logger.info(
                "request_rejected",
                path=path,
                kind=error.kind.value,
                status_code=error.status_code,
                message=error.message,
            )

        body: Dict[str, Any] = {"status": error.status, "message": error.message}
        if self.debug:
            body["error"] = {
                "kind": error.kind.value,
                "statusCode": error.status_code,
                "isOperational": error.is_operational,
                "details": error.details,
            }
            body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return error.status_code, body

    def render(self, request: Request, exc: BaseException) -> JSONResponse:
        status_code, body = self.payload(exc, request.url.path)
        headers = None
        if status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=status_code,
            content=jsonable_encoder(body, custom_encoder={ObjectId: str}),
            headers=headers,
        )

    async def handle(self, request: Request, exc: Exception) -> JSONResponse:
        return self.render(request, exc)

    def register(self, app: FastAPI) -> None:
        """Install this normalizer as the app's exception handlers."""
        for exc_class in (AppError, RequestValidationError, StarletteHTTPException, Exception):
            app.add_exception_handler(exc_class, self.handle)
        # slowapi's middleware may invoke this one without awaiting it.
        app.add_exception_handler(RateLimitExceeded, self.render)
