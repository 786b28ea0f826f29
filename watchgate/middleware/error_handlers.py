"""Centralized error handling with consistent response formatting.

Every error leaves the API in the same envelope::

    {"error": {"category": ..., "code": ..., "detail": ...}}
"""

import logging
from typing import Any
from uuid import UUID, uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from watchgate.exceptions import (
    ActivityLockedError,
    InvalidDurationError,
    InvalidMilestoneError,
    InvalidPlayerUrlError,
    ManualOverrideNotAllowedError,
    PersistenceError,
    ProgressNotFoundError,
    UnlockPolicyError,
    WatchgateError,
)


logger = logging.getLogger(__name__)


# === Error Categories ===


class ErrorCategory:
    """Error category constants."""

    VALIDATION = "VALIDATION_ERROR"
    DATABASE = "DATABASE_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    CONFLICT = "CONFLICT_ERROR"
    INTERNAL = "INTERNAL_ERROR"


class ErrorCode:
    """Specific error codes for better client handling."""

    # Validation errors
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_DURATION = "INVALID_DURATION"
    INVALID_PLAYER_URL = "INVALID_PLAYER_URL"
    INVALID_MILESTONE = "INVALID_MILESTONE"

    # Database errors
    DB_CONNECTION_FAILED = "DB_CONNECTION_FAILED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"

    # Resource errors
    NOT_FOUND = "NOT_FOUND"

    # Unlock policy errors
    ACTIVITY_LOCKED = "ACTIVITY_LOCKED"
    MANUAL_OVERRIDE_NOT_ALLOWED = "MANUAL_OVERRIDE_NOT_ALLOWED"

    # Internal errors
    INTERNAL = "INTERNAL_ERROR"


# === Error Response Formatting ===


def format_error_response(
    category: str,
    code: str,
    detail: str,
    status_code: int,
    suggestions: list[str] | None = None,
    metadata: dict[str, Any] | None = None,
) -> JSONResponse:
    """Format a consistent error response."""
    content: dict[str, Any] = {
        "error": {
            "category": category,
            "code": code,
            "detail": detail,
        }
    }

    if suggestions:
        content["error"]["suggestions"] = suggestions

    if metadata:
        content["error"]["metadata"] = metadata

    return JSONResponse(status_code=status_code, content=content)


async def handle_validation_errors(request: Request, exc: Exception) -> JSONResponse:
    """Handle request and model validation errors."""
    logger.info(f"Validation error on {request.method} {request.url.path}", extra={"error": str(exc)})

    if isinstance(exc, RequestValidationError | PydanticValidationError):
        errors = []
        for error in exc.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            errors.append({"field": field, "message": error["msg"], "type": error["type"]})

        return format_error_response(
            category=ErrorCategory.VALIDATION,
            code=ErrorCode.INVALID_INPUT,
            detail="Invalid input data",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            metadata={"errors": errors},
        )

    return format_error_response(
        category=ErrorCategory.VALIDATION,
        code=ErrorCode.INVALID_INPUT,
        detail=str(exc),
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    )


async def handle_domain_errors(request: Request, exc: WatchgateError) -> JSONResponse:
    """Map domain errors to HTTP responses."""
    if isinstance(exc, ProgressNotFoundError):
        return format_error_response(
            category=ErrorCategory.RESOURCE_NOT_FOUND,
            code=ErrorCode.NOT_FOUND,
            detail=exc.message,
            status_code=status.HTTP_404_NOT_FOUND,
            suggestions=["No progress has been recorded for this unit yet"],
        )

    if isinstance(exc, UnlockPolicyError):
        logger.info(f"Unlock policy rejected {request.method} {request.url.path}: {exc.message}")
        if isinstance(exc, ManualOverrideNotAllowedError):
            return format_error_response(
                category=ErrorCategory.CONFLICT,
                code=ErrorCode.MANUAL_OVERRIDE_NOT_ALLOWED,
                detail=exc.message,
                status_code=status.HTTP_409_CONFLICT,
                metadata={"percent_watched": exc.percent_watched, "minimum_percent": exc.minimum_percent},
            )
        code = ErrorCode.ACTIVITY_LOCKED if isinstance(exc, ActivityLockedError) else ErrorCode.INVALID_INPUT
        return format_error_response(
            category=ErrorCategory.CONFLICT,
            code=code,
            detail=exc.message,
            status_code=status.HTTP_409_CONFLICT,
            suggestions=["Watch more of the video to unlock the activity"],
        )

    if isinstance(exc, PersistenceError):
        logger.warning(f"Persistence error on {request.method} {request.url.path}: {exc.message}")
        return format_error_response(
            category=ErrorCategory.DATABASE,
            code=ErrorCode.PERSISTENCE_FAILED,
            detail="Progress storage is unavailable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            suggestions=["Please try again later"],
        )

    if isinstance(exc, InvalidMilestoneError):
        return format_error_response(
            category=ErrorCategory.VALIDATION,
            code=ErrorCode.INVALID_MILESTONE,
            detail=exc.message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            metadata={"allowed": list(exc.allowed)},
        )

    if isinstance(exc, InvalidDurationError | InvalidPlayerUrlError):
        code = ErrorCode.INVALID_DURATION if isinstance(exc, InvalidDurationError) else ErrorCode.INVALID_PLAYER_URL
        return format_error_response(
            category=ErrorCategory.VALIDATION,
            code=code,
            detail=exc.message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    logger.error(f"Unhandled domain error on {request.method} {request.url.path}: {exc.message}")
    return format_error_response(
        category=ErrorCategory.INTERNAL,
        code=ErrorCode.INTERNAL,
        detail=exc.message,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def handle_database_errors(request: Request, exc: Exception) -> JSONResponse:
    """Handle database errors that escaped the store layer."""
    logger.exception(
        f"Database error on {request.method} {request.url.path}: {exc}",
        extra={"error_type": type(exc).__name__},
        exc_info=(type(exc), exc, exc.__traceback__),
    )

    if isinstance(exc, OperationalError):
        return format_error_response(
            category=ErrorCategory.DATABASE,
            code=ErrorCode.DB_CONNECTION_FAILED,
            detail="Database connection error",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            suggestions=["Please try again later"],
        )

    return format_error_response(
        category=ErrorCategory.DATABASE,
        code=ErrorCode.INTERNAL,
        detail="A database error occurred",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def log_error_context(request: Request, exc: Exception, error_id: UUID | None = None) -> None:
    """Log request context for an unexpected failure."""
    context = {
        "error_id": str(error_id) if error_id else None,
        "method": request.method,
        "path": request.url.path,
        "query_params": dict(request.query_params),
        "client_host": request.client.host if request.client else "unknown",
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }
    logger.error("Request failed", extra=context, exc_info=exc)


async def handle_unexpected_errors(request: Request, exc: Exception) -> JSONResponse:
    """Global handler for unhandled errors."""
    error_id = uuid4()
    log_error_context(request, exc, error_id)
    return format_error_response(
        category=ErrorCategory.INTERNAL,
        code=ErrorCode.INTERNAL,
        detail="An unexpected error occurred",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        metadata={"error_id": str(error_id)},
        suggestions=["Please try again later", "If the problem persists, contact support with the error ID"],
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach every handler to the application."""
    app.add_exception_handler(RequestValidationError, handle_validation_errors)
    app.add_exception_handler(PydanticValidationError, handle_validation_errors)
    app.add_exception_handler(WatchgateError, handle_domain_errors)
    app.add_exception_handler(SQLAlchemyError, handle_database_errors)
    app.add_exception_handler(Exception, handle_unexpected_errors)
