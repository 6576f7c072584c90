"""
Per-client fixed-window rate limiter.

Each client identifier gets one window: ``count`` requests are allowed until
``reset_at``; the first request after ``reset_at`` opens a fresh window.
Because windows are fixed, a client can land up to ``2 * max_requests``
requests in a short span straddling a boundary.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from humangate.errors import RateLimitExceeded

Clock = Callable[[], float]


@dataclass
class RateWindow:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after: int


class RateLimiter:
    def __init__(self, max_requests: int = 50, window_seconds: float = 600, clock: Clock = time.time) -> None:
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def _now(self) -> float:
        return self._clock()

    def check(self, client_id: str) -> RateDecision:
        with self._lock:
            now = self._now()
            window = self._windows.get(client_id)
            if window is None or now > window.reset_at:
                window = RateWindow(count=1, reset_at=now + self.window_seconds)
                self._windows[client_id] = window
                return RateDecision(True, self.max_requests - 1, 0)

            if window.count >= self.max_requests:
                retry_after = max(1, math.ceil(window.reset_at - now))
                return RateDecision(False, 0, retry_after)

            window.count += 1
            return RateDecision(True, self.max_requests - window.count, 0)

    def enforce(self, client_id: str) -> RateDecision:
        """Like :meth:`check` but raises :class:`RateLimitExceeded` on rejection."""
        decision = self.check(client_id)
        if not decision.allowed:
            raise RateLimitExceeded(client_id, decision.retry_after)
        return decision

    def window_for(self, client_id: str) -> RateWindow | None:
        with self._lock:
            window = self._windows.get(client_id)
            return RateWindow(window.count, window.reset_at) if window else None

    def sweep(self) -> int:
        """Drop windows whose reset time has passed. Returns how many were removed."""
        with self._lock:
            now = self._now()
            stale = [key for key, window in self._windows.items() if now > window.reset_at]
            for key in stale:
                del self._windows[key]
            return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


__all__ = ["RateDecision", "RateLimiter", "RateWindow"]
