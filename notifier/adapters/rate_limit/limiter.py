"""Fixed-window rate limiter.

A limiter binds one window store to one policy. Each call counts against the
caller's window, including rejected calls, so a client hammering a limit does
not get its budget back until the window rolls over.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Any, Callable, Mapping

from notifier.adapters.rate_limit.base import (
    AbstractRateWindowStore,
    RateLimitPolicy,
    RateLimitResult,
)
from notifier.adapters.rate_limit.in_memory import InMemoryRateWindowStore
from notifier.core.logging import hash_identifier

logger = logging.getLogger(__name__)


class RateLimiter:
    """Rate limiter using a fixed time window per key.

    The window for a key starts at the first request seen for it (not at a
    wall-clock boundary) and lasts ``policy.window_ms``.

    Important:
        This limiter is per-process only. If the service runs several
        workers, each worker enforces its own independent limits.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        *,
        store: AbstractRateWindowStore | None = None,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float | None = 300.0,
    ) -> None:
        """Initialize the limiter.

        Args:
            policy: Max requests / window configuration.
            store: Window storage; a fresh in-memory store by default.
            clock: Time source function returning UNIX time in seconds.
            sweep_interval_seconds: Period of the background cleanup thread.
                ``None`` or ``0`` disables the thread (``sweep()`` can still be
                called directly).

        Raises:
            ValueError: If the policy is invalid.
        """
        if policy.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if policy.window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        self.policy = policy
        self._store = store or InMemoryRateWindowStore()
        self._clock = clock
        self._stop_sweep = threading.Event()
        self._sweeper: threading.Thread | None = None

        if sweep_interval_seconds:
            self._sweeper = threading.Thread(
                target=self._sweep_forever,
                args=(sweep_interval_seconds,),
                name=f"rate-limit-sweep-{policy.label}",
                daemon=True,
            )
            self._sweeper.start()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"RateLimiter(label={self.policy.label!r}, max_requests={self.policy.max_requests}, "
            f"window_ms={self.policy.window_ms})"
        )

    @property
    def limit(self) -> int:
        return self.policy.max_requests

    def derive_key(self, context: Mapping[str, Any]) -> str:
        """Compute the limiter key for a call context.

        Uses the policy's ``key_func`` when configured, otherwise the
        ``identifier`` entry of the context.
        """
        if self.policy.key_func is not None:
            return self.policy.key_func(context)
        return str(context.get("identifier") or "default")

    def check_and_increment(self, key: str) -> RateLimitResult:
        """Count one request for ``key`` and decide whether it may proceed.

        Args:
            key: Identifier being limited (subscriber id, IP, composite).

        Returns:
            RateLimitResult with allowance decision and metadata.
        """
        now = self._clock()
        window = self._store.hit(key, window_seconds=self.policy.window_seconds, now=now)

        limit = self.policy.max_requests
        remaining = max(0, limit - window.count)

        if window.count <= limit:
            return RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=remaining,
                reset_at=window.window_reset_at,
            )

        retry_after = max(1, math.ceil(window.window_reset_at - now))
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "limiter": self.policy.label,
                "key_hash": hash_identifier(key),
                "count": window.count,
                "limit": limit,
                "retry_after_s": retry_after,
            },
        )
        return RateLimitResult(
            allowed=False,
            limit=limit,
            remaining=remaining,
            reset_at=window.window_reset_at,
            retry_after_seconds=retry_after,
        )

    def check(self, context: Mapping[str, Any]) -> RateLimitResult:
        """Derive the key from ``context`` and count one request for it."""
        return self.check_and_increment(self.derive_key(context))

    def status(self, key: str) -> dict[str, Any]:
        """Current usage for ``key`` without counting a request."""
        window = self._store.peek(key)
        if window is None:
            return {
                "requests": 0,
                "remaining": self.policy.max_requests,
                "reset_at": self._clock() + self.policy.window_seconds,
                "active": False,
            }
        return {
            "requests": window.count,
            "remaining": max(0, self.policy.max_requests - window.count),
            "reset_at": window.window_reset_at,
            "active": True,
        }

    def reset(self, key: str) -> None:
        """Forget the window of a single key."""
        self._store.delete(key)
        logger.info(
            "rate_limit.reset",
            extra={"limiter": self.policy.label, "key_hash": hash_identifier(key)},
        )

    def reset_all(self) -> None:
        """Forget every window."""
        self._store.clear()
        logger.info("rate_limit.reset_all", extra={"limiter": self.policy.label})

    def sweep(self) -> int:
        """Remove stale windows; returns the number removed."""
        removed = self._store.sweep(window_seconds=self.policy.window_seconds, now=self._clock())
        if removed:
            logger.debug(
                "rate_limit.sweep",
                extra={
                    "limiter": self.policy.label,
                    "removed": removed,
                    "entries": len(self._store.snapshot()),
                },
            )
        return removed

    def stats(self) -> dict[str, Any]:
        """Lightweight usage metrics without exposing keys."""
        windows = self._store.snapshot()
        return {
            "label": self.policy.label,
            "max_requests": self.policy.max_requests,
            "window_ms": self.policy.window_ms,
            "active_identifiers": len(windows),
            "total_requests": sum(w.count for w in windows.values()),
        }

    def destroy(self) -> None:
        """Stop the sweep thread and drop all state."""
        self._stop_sweep.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1.0)
            self._sweeper = None
        self._store.clear()
        logger.debug("rate_limit.destroyed", extra={"limiter": self.policy.label})

    def _sweep_forever(self, interval: float) -> None:
        while not self._stop_sweep.wait(interval):
            self.sweep()
