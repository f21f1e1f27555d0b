"""Named collection of rate limiters.

The registry is constructed once at process start (see
``RateLimiterRegistry.from_policies``) and handed to every component that
needs a limiter. It is read-mostly afterwards: lookups take no lock.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping

from notifier.adapters.rate_limit.base import RateLimitPolicy
from notifier.adapters.rate_limit.limiter import RateLimiter
from notifier.core.errors import NotFoundError

logger = logging.getLogger(__name__)


class RateLimiterRegistry:
    """Registry of ``RateLimiter`` instances keyed by name."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float | None = 300.0,
    ) -> None:
        self._clock = clock
        self._sweep_interval_seconds = sweep_interval_seconds
        self._limiters: dict[str, RateLimiter] = {}

    @classmethod
    def from_policies(
        cls,
        policies: Mapping[str, RateLimitPolicy],
        **kwargs: Any,
    ) -> "RateLimiterRegistry":
        """Build a registry holding one limiter per policy table entry."""
        registry = cls(**kwargs)
        for name, policy in policies.items():
            registry.register(name, policy)
        logger.info("rate_limit.registry_initialized", extra={"limiters": len(registry)})
        return registry

    def __len__(self) -> int:
        return len(self._limiters)

    def __contains__(self, name: object) -> bool:
        return name in self._limiters

    def register(self, name: str, policy: RateLimitPolicy) -> RateLimiter:
        """Create and store a limiter for ``policy`` under ``name``.

        Registering an existing name replaces (and destroys) the old limiter.
        """
        previous = self._limiters.get(name)
        if previous is not None:
            previous.destroy()

        limiter = RateLimiter(
            policy,
            clock=self._clock,
            sweep_interval_seconds=self._sweep_interval_seconds,
        )
        self._limiters[name] = limiter
        logger.debug("rate_limit.registered", extra={"limiter_name": name, "label": policy.label})
        return limiter

    def get(self, name: str) -> RateLimiter:
        """Return the limiter registered under ``name``.

        Raises:
            NotFoundError: If no limiter has that name.
        """
        limiter = self._limiters.get(name)
        if limiter is None:
            raise NotFoundError(
                code="rate_limiter_not_found",
                message=f"Rate limiter '{name}' not found",
                details={"resource": "rate_limiter", "key": name},
            )
        return limiter

    def has(self, name: str) -> bool:
        return name in self._limiters

    def names(self) -> list[str]:
        return sorted(self._limiters)

    def reset(self, name: str, identifier: str | None = None) -> None:
        """Reset one identifier of one limiter, or the whole limiter."""
        limiter = self.get(name)
        if identifier is None:
            limiter.reset_all()
        else:
            limiter.reset(identifier)

    def reset_all(self) -> None:
        """Forget every window of every limiter; limiters stay registered."""
        for limiter in self._limiters.values():
            limiter.reset_all()

    def destroy_all(self) -> None:
        """Stop every sweep thread and drop all limiters (shutdown)."""
        for limiter in self._limiters.values():
            limiter.destroy()
        self._limiters.clear()
        logger.info("rate_limit.registry_destroyed")

    def stats(self) -> dict[str, dict[str, Any]]:
        return {name: limiter.stats() for name, limiter in self._limiters.items()}
