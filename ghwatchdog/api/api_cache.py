"""API response caching for GitHub API calls."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    payload: Any
    fetched_at: float


class ApiCache:
    """
    Caches API responses to avoid repeated calls within a crawl run.

    Entries live in memory and expire after a time-to-live. There is no other
    eviction; the cache is expected to last one run.

    Attributes:
        default_ttl: Default time-to-live for cache entries in seconds
    """

    def __init__(self, default_ttl: float = 3600, clock: Callable[[], float] = time.time):
        """
        Initialize the API cache.

        Args:
            default_ttl: Default cache expiration time in seconds (1 hour)
            clock: Time source returning UNIX seconds
        """
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def make_key(endpoint: str, params: Optional[Dict] = None) -> str:
        """
        Generate a deterministic cache key for an API request.

        Args:
            endpoint: API endpoint path or absolute URL
            params: URL query parameters

        Returns:
            str: Cache key
        """
        cache_key = endpoint
        if params:
            # Sort to ensure consistent ordering
            params_str = "&".join(f"{k}={params[k]}" for k in sorted(params))
            cache_key += f"?{params_str}"
        return cache_key

    def get(self, endpoint: str, params: Optional[Dict] = None, ttl: Optional[float] = None) -> Optional[Any]:
        """
        Retrieve a response if cached and not expired.

        Returns:
            Cached payload or None if not found/expired
        """
        return self.get_raw(self.make_key(endpoint, params), ttl)

    def get_raw(self, cache_key: str, ttl: Optional[float] = None) -> Optional[Any]:
        """Retrieve a response by raw key."""
        max_age = ttl if ttl is not None else self.default_ttl
        with self._lock:
            entry = self._entries.get(cache_key)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at > max_age:
            return None
        return entry.payload

    def put(self, endpoint: str, params: Optional[Dict], payload: Any) -> None:
        """Save a response under the key for ``endpoint`` and ``params``."""
        self.put_raw(self.make_key(endpoint, params), payload)

    def put_raw(self, cache_key: str, payload: Any) -> None:
        """Save a response with a raw key, stamped with the current time."""
        entry = CacheEntry(payload=payload, fetched_at=self._clock())
        with self._lock:
            self._entries[cache_key] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
