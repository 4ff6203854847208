"""
Bounded in-memory cache with per-entry expiry.

Instances are created by the caller and passed to the components that use
them, so cache lifetime is explicit and ``clear()`` is the only reset.
"""

import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from modnote.utils.logging import get_logger

logger = get_logger(__name__)

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Size-bounded cache; evicts the oldest insert first and expires entries after ``ttl_seconds``."""

    def __init__(
        self,
        ttl_seconds: float = 120.0,
        max_entries: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[float, V]]" = OrderedDict()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            self._misses += 1
            return None

        self._hits += 1
        return value

    def set(self, key: str, value: V) -> None:
        if key in self._entries:
            del self._entries[key]
        self._entries[key] = (self._clock(), value)

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache evicted oldest entry: {evicted}")

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        logger.debug("Cache cleared")

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "hits": self._hits,
            "misses": self._misses,
        }
