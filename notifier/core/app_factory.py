from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers, and
the service container lifecycle) so tests can build isolated apps.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from notifier.api.routes import health_router, rate_limits_router, subscribers_router, telegram_router
from notifier.core.config import settings
from notifier.core.container import ServiceContainer
from notifier.core.exception_handlers import setup_exception_handlers
from notifier.core.logging import configure_logging
from notifier.core.middleware import request_id_middleware
from notifier.core.openapi import apply_openapi_customizations


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        container: Prebuilt services (tests); built from settings when omitted.

    Returns:
        Configured FastAPI app. The container starts and stops with the
        app lifespan.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    container = container or ServiceContainer.build(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await container.startup()
        try:
            yield
        finally:
            await container.shutdown()

    app = FastAPI(
        title="Notifier Scheduler API",
        description=(
            "Recurring per-subscriber notification delivery (Telegram jokes) with "
            "a durable job scheduler, fixed-window rate limiting on every bot command "
            "and HTTP route, and admin endpoints to inspect and manage schedules."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )
    app.state.container = container

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(subscribers_router, prefix="/v1")
    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(telegram_router, prefix="/v1")

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
