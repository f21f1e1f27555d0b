"""Application-level exception types.

This module defines the domain errors shared by the scheduler, the rate
limiters and the adapters, enabling consistent error handling, logging and
API responses.

Taxonomy:
- InvalidIntervalError: caller-supplied interval out of range (never persisted)
- NotFoundError: unknown limiter name, job or subscriber (not retried)
- UpstreamUnavailable: payload fetch or delivery failed (retried by the runner)
- LockContention: execution lock already held (the poll skips the job)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    min_value: int
    max_value: int
    actual_value: Any
    http_status: int
    retry_after: float
    resource: str
    key: str
    upstream: str
    owner: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class InvalidIntervalError(ValidationAppError):
    """Raised when a delivery interval is outside the accepted range."""


class NotFoundError(AppError):
    """Raised when a limiter, job or subscriber lookup finds nothing."""


class UpstreamUnavailable(AppError):
    """Raised when the payload source or the delivery channel fails."""


class LockContention(AppError):
    """Raised when another worker holds the execution lock for a job."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""
