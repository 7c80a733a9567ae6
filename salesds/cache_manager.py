"""
Cache manager coordinating the memory -> session -> durable cache tiers.

Values are serialized once on set. The ``auto`` strategy places a value by
its serialized size and reads try the tiers fastest first. The cache is an
optimization only: every failure is logged and degrades to a miss.
"""

from typing import Any, Dict, List, Optional, Union

import psutil

from .cache_entry import Priority
from .exceptions import SerializationError
from .interfaces import CacheTier, KeyValueStorage
from .logger import get_logger
from .memory_tier import MemoryTier
from .serialization import serialize, deserialize
from .storage import CACHE_PREFIX
from .storage_tier import StorageBackedTier

STRATEGIES = ("memory", "session", "durable", "auto")
READ_ORDER = ("memory", "session", "durable")


class CacheManager:
    """Three-tier cache with size-based automatic tier selection."""

    def __init__(self, session_storage: KeyValueStorage, durable_storage: KeyValueStorage, config=None):
        if config is not None:
            self.auto_memory_max_bytes = config.cache.auto_memory_max_bytes
            self.auto_session_max_bytes = config.cache.auto_session_max_bytes
            batch_pct = config.cache.batch_eviction_pct
            session_cfg, durable_cfg = config.session_tier, config.durable_tier
            session_tier = StorageBackedTier("session", session_storage, session_cfg.capacity,
                                             session_cfg.default_ttl_ms, batch_pct)
            durable_tier = StorageBackedTier("durable", durable_storage, durable_cfg.capacity,
                                             durable_cfg.default_ttl_ms, batch_pct)
        else:
            self.auto_memory_max_bytes = 1024
            self.auto_session_max_bytes = 10240
            session_tier = StorageBackedTier("session", session_storage, 25, 30 * 60 * 1000)
            durable_tier = StorageBackedTier("durable", durable_storage, 50, 60 * 60 * 1000)

        self.tiers: Dict[str, CacheTier] = {
            "memory": MemoryTier(config=config),
            "session": session_tier,
            "durable": durable_tier,
        }
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "skipped_sets": 0, "expired_cleanups": 0}
        self.logger = get_logger("CacheManager")

    @staticmethod
    def _check_strategy(strategy: str):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown cache strategy: {strategy!r} (expected one of {', '.join(STRATEGIES)})")

    def select_tier(self, size_bytes: int) -> str:
        """Tier used by the auto strategy for a payload of this size."""
        if size_bytes < self.auto_memory_max_bytes:
            return "memory"
        elif size_bytes < self.auto_session_max_bytes:
            return "session"
        return "durable"

    def set(self, key: str, value: Any, strategy: str = "auto", ttl_ms: Optional[int] = None,
            priority: Union[Priority, str] = Priority.NORMAL) -> bool:
        """
        Cache a value.

        Returns True if a tier accepted it. Serialization and storage
        failures are logged and leave the cache untouched.
        """
        self._check_strategy(strategy)
        try:
            payload = serialize(value)
        except SerializationError as e:
            self._stats["skipped_sets"] += 1
            self.logger.warning(f"Not caching {key}: {e}")
            return False

        tier_name = self.select_tier(len(payload)) if strategy == "auto" else strategy
        tier = self.tiers[tier_name]
        ttl = ttl_ms if ttl_ms is not None else tier.default_ttl_ms

        # A key lives in at most one tier
        for other_name, other in self.tiers.items():
            if other_name != tier_name:
                other.delete(key)

        accepted = tier.set(key, payload, ttl, Priority(priority))
        if accepted:
            self._stats["sets"] += 1
            self.logger.debug(f"Cached {key} in {tier_name} tier ({len(payload)} bytes, ttl {ttl}ms)")
        else:
            self._stats["skipped_sets"] += 1
        return accepted

    def get(self, key: str, strategy: str = "auto") -> Any:
        """Return the cached value, or None on a miss or expiry."""
        self._check_strategy(strategy)
        tier_names = READ_ORDER if strategy == "auto" else (strategy,)

        for tier_name in tier_names:
            payload = self.tiers[tier_name].get(key)
            if payload is not None:
                self._stats["hits"] += 1
                return deserialize(payload)

        self._stats["misses"] += 1
        return None

    def delete(self, key: str, strategy: str = "auto") -> bool:
        self._check_strategy(strategy)
        tier_names = READ_ORDER if strategy == "auto" else (strategy,)
        removed = False
        for tier_name in tier_names:
            removed = self.tiers[tier_name].delete(key) or removed
        return removed

    def cleanup(self) -> int:
        """Sweep expired entries from every tier."""
        removed = 0
        for tier in self.tiers.values():
            removed += tier.cleanup()
        self._stats["expired_cleanups"] += removed
        if removed:
            self.logger.info(f"Cache cleanup removed {removed} expired entries")
        return removed

    def clear(self):
        for tier in self.tiers.values():
            tier.clear()
        self.logger.info("All cache tiers cleared")

    def keys(self, strategy: str) -> List[str]:
        """Keys currently held by a single tier (expired entries included)."""
        tier = self.tiers[strategy]
        if isinstance(tier, MemoryTier):
            return list(tier.entries.keys())
        return [k[len(CACHE_PREFIX):] for k in tier.storage.keys(CACHE_PREFIX)]

    def get_stats(self) -> dict:
        """Get cache statistics across all tiers."""
        process = psutil.Process()
        lookups = self._stats["hits"] + self._stats["misses"]
        return {
            **{name: tier.get_stats() for name, tier in self.tiers.items()},
            **self._stats,
            "hit_rate": self._stats["hits"] / lookups if lookups else 0.0,
            "process_rss_mb": process.memory_info().rss / (1024 * 1024),
        }
