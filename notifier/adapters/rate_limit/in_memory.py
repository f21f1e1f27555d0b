"""In-memory rate window store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: every read-modify-write happens under one lock, so concurrent
  checks on the same key never lose an update.
"""

from __future__ import annotations

import threading

from notifier.adapters.rate_limit.base import AbstractRateWindowStore, RateWindow


class InMemoryRateWindowStore(AbstractRateWindowStore):
    """Dictionary of fixed windows keyed by identifier."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._windows: dict[str, RateWindow] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def hit(self, key: str, *, window_seconds: float, now: float) -> RateWindow:
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                window = RateWindow(count=0, window_reset_at=now + window_seconds)
                self._windows[key] = window

            if now >= window.window_reset_at:
                window.count = 0
                window.window_reset_at = now + window_seconds

            window.count += 1
            return RateWindow(count=window.count, window_reset_at=window.window_reset_at)

    def peek(self, key: str) -> RateWindow | None:
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                return None
            return RateWindow(count=window.count, window_reset_at=window.window_reset_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()

    def sweep(self, *, window_seconds: float, now: float) -> int:
        with self._lock:
            stale = [
                key
                for key, window in self._windows.items()
                if now > window.window_reset_at + window_seconds
            ]
            for key in stale:
                del self._windows[key]
            return len(stale)

    def snapshot(self) -> dict[str, RateWindow]:
        with self._lock:
            return {
                key: RateWindow(count=w.count, window_reset_at=w.window_reset_at)
                for key, w in self._windows.items()
            }
