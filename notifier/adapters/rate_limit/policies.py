"""Static rate limit policy table.

One entry per named limiter. The registry is built from this table once at
startup; names are looked up by the HTTP routes (``api:*``), the bot command
layer (``telegram:*``) and the storage/scheduler services.
"""

from __future__ import annotations

from notifier.adapters.rate_limit.base import RateLimitPolicy

_SECOND_MS = 1000
_MINUTE_MS = 60 * _SECOND_MS
_HOUR_MS = 60 * _MINUTE_MS

API_HEALTH = "api:health"
API_STATUS = "api:status"
API_ADMIN = "api:admin"
TELEGRAM_COMMAND = "telegram:command"
DB_USER_CREATION = "db:user-creation"
DB_USER_UPDATE = "db:user-update"
SCHEDULER_CREATION = "scheduler:creation"


DEFAULT_POLICIES: dict[str, RateLimitPolicy] = {
    # HTTP surface
    API_HEALTH: RateLimitPolicy(max_requests=30, window_ms=_MINUTE_MS, label="HealthCheck"),
    API_STATUS: RateLimitPolicy(max_requests=20, window_ms=_MINUTE_MS, label="StatusCheck"),
    API_ADMIN: RateLimitPolicy(max_requests=60, window_ms=_MINUTE_MS, label="Admin"),
    # Bot commands (per chat)
    TELEGRAM_COMMAND: RateLimitPolicy(max_requests=5, window_ms=5 * _SECOND_MS, label="TelegramCommand"),
    "telegram:start": RateLimitPolicy(max_requests=3, window_ms=_MINUTE_MS, label="TelegramStart"),
    "telegram:enable": RateLimitPolicy(max_requests=5, window_ms=_MINUTE_MS, label="TelegramEnable"),
    "telegram:disable": RateLimitPolicy(max_requests=5, window_ms=_MINUTE_MS, label="TelegramDisable"),
    "telegram:frequency": RateLimitPolicy(max_requests=3, window_ms=_MINUTE_MS, label="TelegramFrequency"),
    "telegram:status": RateLimitPolicy(max_requests=10, window_ms=_MINUTE_MS, label="TelegramStatus"),
    "telegram:help": RateLimitPolicy(max_requests=20, window_ms=_MINUTE_MS, label="TelegramHelp"),
    "telegram:test": RateLimitPolicy(max_requests=20, window_ms=_MINUTE_MS, label="TelegramTest"),
    # Storage
    DB_USER_CREATION: RateLimitPolicy(max_requests=100, window_ms=_HOUR_MS, label="UserCreation"),
    DB_USER_UPDATE: RateLimitPolicy(max_requests=500, window_ms=_HOUR_MS, label="UserUpdate"),
    # Scheduler
    SCHEDULER_CREATION: RateLimitPolicy(max_requests=50, window_ms=_MINUTE_MS, label="ScheduleCreation"),
}
