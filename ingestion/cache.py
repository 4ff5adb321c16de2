"""In-memory TTL cache with LRU eviction.

The audit manager builds one cache and hands it to the lookup components, so
separate managers (and tests) never share entries.
"""

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class _Entry:
    value: Any
    expires_at: float
    hits: int = 0


def cache_key(*parts: Any) -> str:
    """Stable key for a lookup, e.g. ``cache_key('github_user', 'octocat')``."""
    raw = '|'.join(str(part) for part in parts)
    return hashlib.sha256(raw.encode('utf-8')).hexdigest()


class TTLCache:
    """Thread-safe cache; entries expire after their TTL, least recently used go first."""

    def __init__(self, max_size: int = 1000, default_ttl: float = 300.0, clock=time.monotonic):
        if max_size <= 0:
            raise ValueError('max_size must be positive')
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: 'OrderedDict[str, _Entry]' = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                self._misses += 1
                return default
            entry.hits += 1
            self._hits += 1
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self._max_size:
                self.cleanup()
                while len(self._entries) >= self._max_size:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.debug('Evicted LRU cache entry %s', evicted[:12])
            self._entries[key] = _Entry(value, self._clock() + ttl)

    def get_or_set(self, key: str, factory: Callable[[], Any], ttl: Optional[float] = None) -> Any:
        """Return the cached value or compute, store and return it.

        ``factory`` runs outside the lock; two racing callers may both compute.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = factory()
        self.set(key, value, ttl)
        return value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def cleanup(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def stats(self) -> Dict[str, float]:
        with self._lock:
            total = self._hits + self._misses
            return {
                'hits': self._hits,
                'misses': self._misses,
                'entries': len(self._entries),
                'hit_rate': (self._hits / total) if total else 0.0,
            }
