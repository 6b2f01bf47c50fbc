from __future__ import annotations

import threading
import time
from typing import Any, Callable, Hashable

from cachetools import TTLCache

from carereach.log import get_logger

_MISSING = object()


class ResponseCache:
    """
    In-process TTL cache for read-heavy API responses.

    Keys are plain strings such as `"facilities:type=hospital"`, so a whole family of
    entries can be dropped with `invalidate_prefix`. The timer is injectable; tests pass
    a fake clock instead of sleeping.
    """

    def __init__(self, maxsize: int = 1024, ttl_s: float = 3600.0, timer: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.RLock()
        self._cache: TTLCache = TTLCache(maxsize=int(maxsize), ttl=float(ttl_s), timer=timer)
        self.ttl_s = float(ttl_s)
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            value = self._cache.get(key, _MISSING)
            if value is _MISSING:
                self._misses += 1
                return default
            self._hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._cache[key] = value

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        # Compute runs under the lock so concurrent misses for one key do not stampede the store.
        with self._lock:
            value = self.get(key, _MISSING)
            if value is not _MISSING:
                return value
            value = compute()
            self._cache[key] = value
            return value

    def invalidate(self, key: Hashable) -> bool:
        with self._lock:
            return self._cache.pop(key, _MISSING) is not _MISSING

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in list(self._cache.keys()) if isinstance(k, str) and k.startswith(prefix)]
            for k in doomed:
                self._cache.pop(k, None)
            return len(doomed)

    def clear(self) -> int:
        with self._lock:
            n = len(self._cache)
            self._cache.clear()
        get_logger().info("Response cache cleared (%s entries)", n)
        return n

    def expire(self) -> int:
        """Drop expired entries now instead of lazily on the next write; returns how many."""
        with self._lock:
            return len(self._cache.expire())

    def stats(self) -> dict[str, int]:
        with self._lock:
            self._cache.expire()
            return {"total": len(self._cache), "hits": self._hits, "misses": self._misses}
