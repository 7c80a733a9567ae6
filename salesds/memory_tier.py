"""
In-memory cache tier with a fixed entry capacity.
When full, evicts the single least recently accessed entry before inserting.
"""

from collections import OrderedDict
from typing import Optional

from .cache_entry import CacheEntry, Priority, now_ms
from .interfaces import CacheTier
from .logger import get_logger


class MemoryTier(CacheTier):
    """Strict-LRU in-memory storage for small, hot values."""

    name = "memory"

    def __init__(self, capacity: int = 100, default_ttl_ms: int = 5 * 60 * 1000, config=None):
        if config is not None:
            self.capacity = config.memory_tier.capacity
            self.default_ttl_ms = config.memory_tier.default_ttl_ms
        else:
            self.capacity = capacity
            self.default_ttl_ms = default_ttl_ms
        # Ordered oldest access first
        self.entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.evictions = 0
        self.logger = get_logger("MemoryTier")

    def set(self, key: str, value: bytes, ttl_ms: int, priority: Priority = Priority.NORMAL) -> bool:
        if self.capacity <= 0:
            return False
        if key in self.entries:
            del self.entries[key]
        elif len(self.entries) >= self.capacity:
            self._evict_least_recent()

        self.entries[key] = CacheEntry(value=value, ttl_ms=ttl_ms, priority=priority)
        return True

    def _evict_least_recent(self):
        """Evict the entry with the oldest access."""
        if not self.entries:
            return
        evicted_key, entry = self.entries.popitem(last=False)
        self.evictions += 1
        self.logger.debug(f"Evicted {evicted_key} (last access {entry.last_access:.0f}, {entry.access_count} hits)")

    def get(self, key: str) -> Optional[bytes]:
        entry = self.entries.get(key)
        if entry is None:
            return None

        now = now_ms()
        if not entry.is_valid(now):
            return None

        entry.touch(now)
        self.entries.move_to_end(key)
        return entry.value

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Raw entry access for inspection, no bookkeeping."""
        return self.entries.get(key)

    def delete(self, key: str) -> bool:
        return self.entries.pop(key, None) is not None

    def cleanup(self) -> int:
        now = now_ms()
        expired = [key for key, entry in self.entries.items() if not entry.is_valid(now)]
        for key in expired:
            del self.entries[key]
        if expired:
            self.logger.debug(f"Removed {len(expired)} expired entries")
        return len(expired)

    def clear(self):
        self.entries.clear()

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: str) -> bool:
        return key in self.entries

    def get_stats(self) -> dict:
        return {
            "tier_name": self.name,
            "size": len(self.entries),
            "capacity": self.capacity,
            "default_ttl_ms": self.default_ttl_ms,
            "evictions": self.evictions,
            "memory_bytes": sum(len(e.value) for e in self.entries.values()),
            "capacity_used_pct": (len(self.entries) / self.capacity) * 100 if self.capacity else 0.0,
        }
