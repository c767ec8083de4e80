"""Custom exception hierarchy and handlers."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from uuid import UUID

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    status_code = 400
    code = "app_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def details(self) -> dict | None:
        return None


class ValidationException(AppException):
    """Raised when input is malformed, before any side effect."""

    status_code = 422
    code = "validation_error"


class NotFoundException(AppException):
    """Raised when entity is not found."""

    status_code = 404
    code = "not_found"


class ConflictException(AppException):
    """Raised when a request conflicts with existing state."""

    status_code = 409
    code = "conflict"

    def __init__(self, message: str, conflicting_ids: Sequence[UUID] = ()) -> None:
        super().__init__(message)
        self.conflicting_ids = list(conflicting_ids)

    def details(self) -> dict | None:
        if not self.conflicting_ids:
            return None
        return {"conflicting_ids": [str(item) for item in self.conflicting_ids]}


class InvalidTransitionException(AppException):
    """Raised when a booking state machine guard is violated."""

    status_code = 409
    code = "invalid_transition"


class ExternalFailureException(AppException):
    """Raised when an external collaborator times out or errors."""

    status_code = 502
    code = "external_failure"


class UnauthorizedException(AppException):
    """Raised when user has no rights for operation."""

    status_code = 403
    code = "forbidden"


async def app_exception_handler(_: Request, exc: AppException) -> JSONResponse:
    """Handle custom domain exceptions."""
    error = {"code": exc.code, "message": exc.message}
    details = exc.details()
    if details:
        error["details"] = details
    return JSONResponse(status_code=exc.status_code, content={"error": error})


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions in unified shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": "http_error", "message": str(exc.detail)}},
    )


async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "internal_error", "message": "Internal server error"}},
    )


def register_exception_handlers(app) -> None:
    """Register global exception handlers."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
