"""Rate limiting adapters.

This package provides a small abstraction layer so the service can start with
an in-memory window store and later migrate to Redis or another shared store
without changing the HTTP or bot layers.
"""

from notifier.adapters.rate_limit.base import RateLimitPolicy, RateLimitResult
from notifier.adapters.rate_limit.limiter import RateLimiter
from notifier.adapters.rate_limit.policies import DEFAULT_POLICIES
from notifier.adapters.rate_limit.registry import RateLimiterRegistry

__all__ = [
    "DEFAULT_POLICIES",
    "RateLimitPolicy",
    "RateLimitResult",
    "RateLimiter",
    "RateLimiterRegistry",
]
