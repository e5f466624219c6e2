import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from config import POSTS_CACHE_TTL

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    value: Any
    fetched_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.fetched_at < self.ttl


class TTLCache:
    """TTL cache owned by one engine instance.

    Overlapping fetches are not deduplicated: each completed fetch calls
    put(), so whichever resolves last owns the entry.
    """

    def __init__(self, ttl: float = POSTS_CACHE_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self.entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        """Get cached value if not expired"""
        entry = self.entries.get(key)
        if entry is None:
            return None

        if not entry.is_fresh(self.clock()):
            del self.entries[key]
            logger.debug("cache entry %s expired", key)
            return None

        return entry.value

    def put(self, key: str, value: Any) -> None:
        """Set cached value with current timestamp"""
        self.entries[key] = CacheEntry(value, self.clock(), self.ttl)

    def invalidate(self, key: str) -> None:
        if self.entries.pop(key, None) is not None:
            logger.debug("cache entry %s invalidated", key)

    def clear(self) -> None:
        self.entries.clear()

    def clear_expired(self) -> int:
        """Remove expired entries"""
        now = self.clock()
        expired_keys = [key for key, entry in self.entries.items() if not entry.is_fresh(now)]
        for key in expired_keys:
            del self.entries[key]
        return len(expired_keys)
