"""In-memory cache with per-entry time-to-live."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    data: Any
    expires_at: float


class TTLCache:
    """In-memory cache with TTL support.

    Owned by whoever constructs it (the service container), never a module
    global. Used to cache catalogue search results.
    """

    def __init__(self, default_ttl_seconds: float = 3600, clock: Callable[[], float] = time.monotonic):
        """Initialize cache.

        Args:
            default_ttl_seconds: TTL applied when ``set`` is called without one
            clock: Monotonic time source, replaceable in tests
        """
        self._entries: dict[str, CacheEntry] = {}
        self.default_ttl = default_ttl_seconds
        self._clock = clock

    def set(self, key: str, data: Any, ttl_seconds: float | None = None) -> None:
        self._cleanup_expired()
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        self._entries[key] = CacheEntry(data=data, expires_at=self._clock() + ttl)
        logger.debug(f"Cache set: {key} (ttl {ttl}s)")

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if missing or expired."""
        entry = self._live_entry(key)
        if entry is None:
            logger.debug(f"Cache miss: {key}")
            return None

        logger.debug(f"Cache hit: {key}")
        return entry.data

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Cache cleared")

    def stats(self) -> dict[str, Any]:
        """Get cache statistics after dropping expired entries."""
        self._cleanup_expired()
        return {"size": len(self._entries), "keys": list(self._entries.keys())}

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _cleanup_expired(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
