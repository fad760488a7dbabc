from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class TTLCache:
    def __init__(self, default_ttl_s: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.default_ttl_s = max(1, int(default_ttl_s))
        self._data: dict[str, tuple[float, object]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> object | None:
        now = self._clock()
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                self._data.pop(key, None)
                return None
            return value

    def set(self, key: str, value: object, ttl_s: int | None = None) -> None:
        ttl_value = self.default_ttl_s if ttl_s is None else max(1, int(ttl_s))
        expires_at = self._clock() + ttl_value
        with self._lock:
            self._data[key] = (expires_at, value)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class ContextSource(Protocol):
    def get(self) -> str: ...


class StaticContext:
    def __init__(self, text: str = "") -> None:
        self.text = text

    def get(self) -> str:
        return self.text


class SystemContextCache:
    """Process-wide copy of the shared system-context document.

    Stale or missing values are refetched on read. The fetch runs outside the
    cache lock, so two concurrent misses may both refetch; they store the same
    document.
    """

    _KEY = "system_context"

    def __init__(self, fetch: Callable[[], str], ttl_s: int, clock: Callable[[], float] = time.monotonic) -> None:
        self._fetch = fetch
        self._cache = TTLCache(default_ttl_s=ttl_s, clock=clock)

    def get(self) -> str:
        cached = self._cache.get(self._KEY)
        if isinstance(cached, str):
            return cached
        value = self._fetch()
        self._cache.set(self._KEY, value)
        logger.info("system_context_refreshed", extra={"extra_fields": {"chars": len(value)}})
        return value

    def invalidate(self) -> None:
        self._cache.invalidate(self._KEY)
