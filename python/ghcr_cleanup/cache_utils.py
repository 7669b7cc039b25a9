"""Caching utilities for registry lookups"""

import logging
import time
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class TTLCache(Generic[T]):
    """Time-To-Live cache with automatic expiration"""

    def __init__(self, ttl_seconds: int = 3600, max_size: Optional[int] = None,
                 clock: Callable[[], float] = time.time):
        """Initialize TTL cache

        Args:
            ttl_seconds: Time to live in seconds (default: 1 hour)
            max_size: Maximum number of items (None = unlimited)
            clock: Time source, overridable for tests
        """
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._cache: Dict[str, Tuple[T, float]] = {}
        self._access_times: Dict[str, float] = {}

    def get(self, key: str) -> Optional[T]:
        """Get value from cache if not expired"""
        if key not in self._cache:
            return None

        value, expiry_time = self._cache[key]

        if self._clock() > expiry_time:
            self.remove(key)
            return None

        # Update access time for LRU eviction
        self._access_times[key] = self._clock()
        return value

    def set(self, key: str, value: T) -> None:
        """Set value in cache with TTL"""
        expiry_time = self._clock() + self.ttl_seconds

        # If at max size, evict least recently used
        if self.max_size and len(self._cache) >= self.max_size and key not in self._cache:
            lru_key = min(self._access_times.items(), key=lambda x: x[1])[0]
            logger.debug(f"Evicting {lru_key} from cache")
            self.remove(lru_key)

        self._cache[key] = (value, expiry_time)
        self._access_times[key] = self._clock()

    def remove(self, key: str) -> None:
        """Remove specific key from cache"""
        self._cache.pop(key, None)
        self._access_times.pop(key, None)

    def clear(self) -> None:
        """Clear all cached items"""
        self._cache.clear()
        self._access_times.clear()

    def size(self) -> int:
        """Get current cache size"""
        return len(self._cache)

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None
