"""
gateway.cache — Explicit, bounded, TTL scenario response cache.

Owned by the ScenarioGateway instance that creates it. Never a module-level
singleton.

Design contract:
    - Key: request fingerprint (gateway.hashing.request_fingerprint).
    - Only successful client responses are stored; errors never are.
    - Entries older than ttl_seconds are dropped on read.
    - LRU eviction once max_entries is reached.
    - ttl_seconds == 0 disables the cache: get() always misses, put() is a no-op.
    - The clock is injected (defaults to time.monotonic) so expiry is testable.
    - Thread-safe via threading.Lock.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable

logger = logging.getLogger("isi.gateway.cache")


class ScenarioCache:
    """Usage::

        cache = ScenarioCache(ttl_seconds=30, max_entries=256)
        hit = cache.get(fingerprint)
        if hit is None:
            ...
            cache.put(fingerprint, body)
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl_seconds!r}")
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries!r}")
        self._ttl = float(ttl_seconds)
        self._max = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        # fingerprint -> (stored_at, value)
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    def get(self, key: str) -> Any | None:
        if not self.enabled:
            return None
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            stored_at, value = entry
            if now - stored_at >= self._ttl:
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return value

    def put(self, key: str, value: Any) -> None:
        if not self.enabled:
            return
        now = self._clock()
        with self._lock:
            self._entries[key] = (now, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache eviction: %s (max_entries=%d)", evicted[:16], self._max)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (t, _) in self._entries.items() if now - t >= self._ttl]
            for k in expired:
                del self._entries[k]
            return len(expired)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "enabled": self.enabled,
                "ttl_seconds": self._ttl,
                "max_entries": self._max,
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
            }
