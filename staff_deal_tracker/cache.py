from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

from cachetools import TTLCache


logger = logging.getLogger(__name__)


class ResponseCache:
    """
    TTL cache in front of read-style Read API calls, keyed by endpoint name.
    Only `clear()` invalidates; there is no per-key eviction besides expiry.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        *,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: TTLCache = TTLCache(maxsize=max_entries, ttl=ttl_seconds, timer=clock)
        # TTLCache is not thread-safe
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        cached = self.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return cached
        value = compute()
        self.set(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            n = len(self._entries)
            self._entries.clear()
        logger.info("Response cache cleared (%d entries)", n)

    def __len__(self) -> int:
        with self._lock:
            self._entries.expire()
            return len(self._entries)
