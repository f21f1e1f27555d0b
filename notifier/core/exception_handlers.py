"""Global exception handlers for consistent error responses.

Design:
- AppError subclasses -> HTTP status from ``status_for_error``
  (400 invalid input, 403 auth, 404 unknown resource, 502 upstream, 409 lock)
- Unexpected Exception -> generic 500 (safety net, nothing leaked)
- All responses share ``{"error": {code, message, request_id, details?}}``
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from notifier.core.errors import (
    AppError,
    AuthenticationAppError,
    LockContention,
    NotFoundError,
    UpstreamUnavailable,
    ValidationAppError,
)
from notifier.core.logging import get_request_id

logger = logging.getLogger(__name__)

# Checked in order; first match wins.
_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (ValidationAppError, 400),
    (AuthenticationAppError, 403),
    (NotFoundError, 404),
    (LockContention, 409),
    (UpstreamUnavailable, 502),
)


def status_for_error(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the mapped status code and error details.
    """
    status_code = status_for_error(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs the failure with its type for debugging and returns a generic
    message: no stack traces or internals reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app.

    Specific handlers are registered before the general fallback.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
