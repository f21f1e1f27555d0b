"""HTTP middleware for request ID propagation and access logging.

Every request/response pair carries a correlation id:
- taken from the incoming ``LOG_REQUEST_ID_HEADER`` header, or a new UUID
- stored in contextvars so every log line of the request includes it
- echoed back in the response headers together with the duration

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from notifier.core.config import settings
from notifier.core.logging import clear_request_id, set_request_id

logger = logging.getLogger("notifier.access")


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a request id for the duration of the request and log its outcome."""

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "http.request",
            extra={
                "method": request.method,
                "request_path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
