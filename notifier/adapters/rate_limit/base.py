"""Rate limiter interfaces and value types.

Limiters depend on this abstraction (not the concrete store) so the window
storage can be swapped later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Mapping


KeyFunc = Callable[[Mapping[str, Any]], str]


@dataclass(frozen=True)
class RateLimitPolicy:
    """Static configuration of one named limiter.

    Attributes:
        max_requests: Maximum number of requests allowed per window.
        window_ms: Window length in milliseconds.
        label: Human-readable name used in logs.
        key_func: Optional function deriving the limiter key from a call context.
    """

    max_requests: int
    window_ms: int
    label: str = "RateLimiter"
    key_func: KeyFunc | None = None

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a check-and-increment operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None = None


@dataclass
class RateWindow:
    """Counter state for one key inside one limiter."""

    count: int
    window_reset_at: float


class AbstractRateWindowStore(ABC):
    """Per-key counters with expiry."""

    @abstractmethod
    def hit(self, key: str, *, window_seconds: float, now: float) -> RateWindow:
        """Count one request for ``key`` and return the updated window.

        The window is created when absent and rolled over when
        ``now >= window_reset_at``; both happen atomically with the increment.
        The returned object is a snapshot, not the live entry.
        """
        raise NotImplementedError

    @abstractmethod
    def peek(self, key: str) -> RateWindow | None:
        """Return a snapshot of the window for ``key`` without counting."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        """Forget ``key``."""
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Forget every key."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self, *, window_seconds: float, now: float) -> int:
        """Drop entries whose reset time is more than one window in the past.

        Returns:
            Number of removed entries.
        """
        raise NotImplementedError

    @abstractmethod
    def snapshot(self) -> dict[str, RateWindow]:
        """Copy of all entries (for stats and tests)."""
        raise NotImplementedError
