from __future__ import annotations

from notifier.api.routes.health import router as health_router
from notifier.api.routes.rate_limits import router as rate_limits_router
from notifier.api.routes.subscribers import router as subscribers_router
from notifier.api.routes.telegram import router as telegram_router

__all__ = ["health_router", "rate_limits_router", "subscribers_router", "telegram_router"]
