"""Size- and time-bounded LRU cache."""
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


@dataclass
class _CacheItem:
    data: Any
    created_at: float
    expires_at: float
    access_count: int = 0
    last_accessed: float = 0.0


class BoundedCache:
    """
    Key-value cache with per-entry TTL and least-recently-used eviction.

    Expired entries are purged on every write and count as misses on read.
    Inserting a new key at capacity evicts the least recently used entry.
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize cache.

        Args:
            max_size: Maximum number of entries
            ttl_seconds: Default time-to-live per entry
            clock: Monotonic time source
        """
        self.max_size = max_size
        self.default_ttl = ttl_seconds
        self._clock = clock
        self._items: "OrderedDict[str, _CacheItem]" = OrderedDict()
        self._lock = threading.RLock()
        self._hit_count = 0
        self._miss_count = 0

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        now = self._clock()
        expires_at = now + (ttl if ttl is not None else self.default_ttl)

        with self._lock:
            self._cleanup(now)

            if key not in self._items and len(self._items) >= self.max_size:
                self._items.popitem(last=False)

            self._items[key] = _CacheItem(
                data=value,
                created_at=now,
                expires_at=expires_at,
                last_accessed=now
            )
            self._items.move_to_end(key)

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()

        with self._lock:
            item = self._items.get(key)
            if item is None:
                self._miss_count += 1
                return None

            if now > item.expires_at:
                del self._items[key]
                self._miss_count += 1
                return None

            item.access_count += 1
            item.last_accessed = now
            self._items.move_to_end(key)
            self._hit_count += 1
            return item.data

    def has(self, key: str) -> bool:
        """Check presence without touching recency or hit statistics."""
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return False
            if self._clock() > item.expires_at:
                del self._items[key]
                return False
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._hit_count = 0
            self._miss_count = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _cleanup(self, now: float) -> None:
        expired = [key for key, item in self._items.items() if now > item.expires_at]
        for key in expired:
            del self._items[key]

    def get_stats(self) -> Dict:
        """Get cache statistics."""
        with self._lock:
            total_requests = self._hit_count + self._miss_count
            return {
                'size': len(self._items),
                'max_size': self.max_size,
                'hit_count': self._hit_count,
                'miss_count': self._miss_count,
                'hit_rate': (self._hit_count / total_requests) * 100 if total_requests > 0 else 0,
                'total_requests': total_requests
            }

    def get_entries(self) -> List[Dict]:
        """Get entry metadata, most recently accessed first."""
        with self._lock:
            entries = [
                {
                    'key': key,
                    'access_count': item.access_count,
                    'last_accessed': item.last_accessed,
                    'expires_at': item.expires_at
                }
                for key, item in self._items.items()
            ]
        return sorted(entries, key=lambda e: e['last_accessed'], reverse=True)


def user_content_key(item_id: int, media_kind: str) -> str:
    """Cache key for a rated or candidate catalog item."""
    return f"user_content_{media_kind}_{item_id}"
