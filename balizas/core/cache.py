"""Balizas V16 — Single-entry TTL cache for the last normalized feed result."""

import time
from typing import Any, Callable, Optional


class FeedCache:
    """Best-effort read-through cache holding one value.

    The clock is injectable so staleness can be tested without sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: Optional[Any] = None
        self._stored_at: Optional[float] = None

    def get(self) -> Optional[Any]:
        """Return the cached value, or None if empty or expired."""
        if self._data is None or self._stored_at is None:
            return None
        if self._clock() - self._stored_at >= self.ttl_seconds:
            return None
        return self._data

    def set(self, data: Any) -> None:
        self._data = data
        self._stored_at = self._clock()

    def clear(self) -> None:
        self._data = None
        self._stored_at = None

    def age(self) -> Optional[float]:
        """Seconds since the entry was stored (None when empty)."""
        if self._stored_at is None:
            return None
        return self._clock() - self._stored_at
