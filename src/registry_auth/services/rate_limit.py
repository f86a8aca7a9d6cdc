"""Per-client fixed-window request limits for the auth endpoints."""

from __future__ import annotations

import time
from collections.abc import Callable
from threading import Lock

from registry_auth.core.errors import RateLimitedError


class FixedWindowRateLimiter:
    """Allow at most ``limit`` hits per client within each window.

    Windows are aligned to multiples of ``window_seconds``; counters from
    earlier windows are dropped whenever a new window starts.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._window = -1
        self._counts: dict[str, int] = {}
        self._lock = Lock()

    def hit(self, client_key: str) -> bool:
        """Record a request and return whether it is within the limit."""
        window = int(self._clock() // self.window_seconds)
        with self._lock:
            if window != self._window:
                self._window = window
                self._counts.clear()
            count = self._counts.get(client_key, 0) + 1
            self._counts[client_key] = count
            return count <= self.limit

    def check(self, client_key: str) -> None:
        """Record a request, raising ``RateLimitedError`` past the limit."""
        if not self.hit(client_key):
            raise RateLimitedError()

    def reset(self) -> None:
        with self._lock:
            self._window = -1
            self._counts.clear()
