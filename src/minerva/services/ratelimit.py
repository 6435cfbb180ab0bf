"""Process-wide fixed-window request counter keyed by user id."""

from __future__ import annotations

import time
from typing import Callable

from minerva.errors import RateLimitExceeded


class FixedWindowRateLimiter:
    """In-memory fixed-window counter.

    State lives in the process and is lost on restart. A single event loop
    makes the read-modify-write in :meth:`hit` atomic; running several
    instances would need a shared counter store.
    """

    def __init__(self, requests: int, window_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.requests = requests
        self.window = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    def hit(self, user_id: str) -> None:
        """Count one request for ``user_id`` or raise ``RateLimitExceeded``."""

        now = self._clock()
        window_start, count = self._windows.get(user_id, (now, 0))
        if now - window_start >= self.window:
            window_start, count = now, 0
        if count >= self.requests:
            raise RateLimitExceeded(user_id, retry_after=self.window - (now - window_start))
        self._windows[user_id] = (window_start, count + 1)

    def reset(self) -> None:
        self._windows.clear()
