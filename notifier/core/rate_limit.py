"""Rate limiting dependency for FastAPI routes.

This module wires the named limiters of the ``RateLimiterRegistry`` into the
HTTP layer.

Design goals:
- Minimal coupling: routes declare ``Depends(rate_limited("api:admin"))`` only.
- No module state: the registry lives on the service container
  (``request.app.state.container``), built once per application.
- A rejected request short-circuits before the route body runs.

Identifier: first hop of ``X-Forwarded-For`` when present, else the client
address.
"""

from __future__ import annotations

import logging
import math
from typing import Awaitable, Callable

from fastapi import HTTPException, Request, Response, status

from notifier.adapters.rate_limit.base import RateLimitResult
from notifier.core.config import settings
from notifier.core.logging import hash_identifier

logger = logging.getLogger(__name__)


def client_identifier(request: Request) -> str:
    """Return the identifier used as the limiter key for ``request``."""

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Build the ``RateLimit-*`` (and ``Retry-After``) headers for a result."""

    headers = {
        "RateLimit-Limit": str(result.limit),
        "RateLimit-Remaining": str(result.remaining),
        "RateLimit-Reset": str(math.ceil(result.reset_at)),
    }
    if not result.allowed and result.retry_after_seconds is not None:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def rate_limited(name: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Create a FastAPI dependency enforcing the limiter registered as ``name``.

    Usage:
        @router.get("/health", dependencies=[Depends(rate_limited("api:health"))])

    Raises (from the dependency):
        HTTPException: 429 Too Many Requests when the budget is exhausted.
        NotFoundError: If ``name`` is not registered (programming error).
    """

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        if not settings.app.rate_limit_enabled:
            return

        limiter = request.app.state.container.rate_limiters.get(name)
        identifier = client_identifier(request)
        result = limiter.check({"identifier": identifier, "path": request.url.path})

        headers = rate_limit_headers(result) if settings.app.rate_limit_include_headers else {}

        if result.allowed:
            response.headers.update(headers)
            return

        logger.warning(
            "rate_limit.http_rejected",
            extra={
                "limiter": name,
                "key_hash": hash_identifier(identifier),
                "request_path": request.url.path,
                "retry_after_s": result.retry_after_seconds,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "too_many_requests",
                "message": "Rate limit exceeded. Try again later.",
                "retry_after": result.retry_after_seconds,
            },
            headers=headers or None,
        )

    enforce_rate_limit.__name__ = f"rate_limited_{name.replace(':', '_').replace('-', '_')}"
    return enforce_rate_limit
