import fnmatch
import hashlib
import json
import time
from threading import Lock
from typing import Any

from shop_assistant.core.config import settings

CACHE_PREFIX = "api_cache:"


class TTLCache:
    """Simple in-memory cache with per-entry TTL expiration."""

    def __init__(self, default_ttl: int = 300):
        self._cache: dict[str, tuple[Any, float]] = {}  # key -> (value, expiry)
        self._default_ttl = default_ttl
        self._lock = Lock()

    def get(self, key: str) -> Any:
        """Return the cached value, or None when missing or expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if time.monotonic() < expiry:
                return value
            del self._cache[key]
            return None

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = ttl or self._default_ttl
        with self._lock:
            self._cache[key] = (value, time.monotonic() + ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def invalidate(self, pattern: str | None = None) -> int:
        """Drop entries whose key matches a glob pattern (all entries when no pattern)."""
        with self._lock:
            if pattern is None:
                count = len(self._cache)
                self._cache.clear()
                return count
            keys_to_remove = [key for key in self._cache if fnmatch.fnmatchcase(key, pattern)]
            for key in keys_to_remove:
                del self._cache[key]
            return len(keys_to_remove)

    def purge_expired(self) -> int:
        now = time.monotonic()
        with self._lock:
            expired = [key for key, (_, expiry) in self._cache.items() if expiry <= now]
            for key in expired:
                del self._cache[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


def make_query_cache_key(namespace: str, params: dict) -> str:
    digest = hashlib.md5(json.dumps(params, sort_keys=True, default=str).encode("utf-8")).hexdigest()
    return f"{CACHE_PREFIX}{namespace}:{digest}"


query_cache = TTLCache(default_ttl=settings.query_cache_ttl_seconds)
