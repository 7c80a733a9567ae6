"""
Cache tiers backed by a key/value storage (session or durable scope).

Scanning the backing store is comparatively expensive, so when a tier is
full it evicts the oldest fraction of its entries in one pass instead of a
single entry per insert. Backing-store failures never leave the tier: reads
degrade to a miss and writes or removals to a logged no-op.
"""

import math
from typing import List, Optional, Tuple

from .cache_entry import CacheEntry, Priority, now_ms
from .exceptions import StorageQuotaError
from .interfaces import CacheTier, KeyValueStorage
from .logger import get_logger
from .storage import CACHE_PREFIX

STORAGE_ERRORS = (StorageQuotaError, OSError)


class StorageBackedTier(CacheTier):
    """Bounded cache tier persisting entry envelopes into a KeyValueStorage."""

    def __init__(self, name: str, storage: KeyValueStorage, capacity: int, default_ttl_ms: int,
                 batch_eviction_pct: float = 0.25):
        self.name = name
        self.storage = storage
        self.capacity = capacity
        self.default_ttl_ms = default_ttl_ms
        self.batch_eviction_pct = batch_eviction_pct
        self.evictions = 0
        self.write_failures = 0
        self.io_errors = 0
        self.logger = get_logger(f"{name.capitalize()}Tier")

    @staticmethod
    def _storage_key(key: str) -> str:
        return f"{CACHE_PREFIX}{key}"

    # ------------------------------------------------------------------
    # Guarded backing-store access
    # ------------------------------------------------------------------

    def _cache_keys(self) -> List[str]:
        try:
            return self.storage.keys(CACHE_PREFIX)
        except STORAGE_ERRORS as e:
            self.io_errors += 1
            self.logger.warning(f"Could not list {self.name} cache keys: {e}")
            return []

    def _read_raw(self, storage_key: str) -> Optional[bytes]:
        try:
            return self.storage.get_item(storage_key)
        except STORAGE_ERRORS as e:
            self.io_errors += 1
            self.logger.warning(f"Read of {storage_key} failed, treating as miss: {e}")
            return None

    def _remove(self, storage_key: str) -> bool:
        try:
            self.storage.remove_item(storage_key)
            return True
        except STORAGE_ERRORS as e:
            self.io_errors += 1
            self.logger.warning(f"Could not remove {storage_key} from {self.name} tier: {e}")
            return False

    def _read_entry(self, storage_key: str) -> Optional[CacheEntry]:
        raw = self._read_raw(storage_key)
        if raw is None:
            return None
        try:
            return CacheEntry.from_bytes(raw)
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Corrupt cache envelope at {storage_key}: {e}")
            return None

    # ------------------------------------------------------------------
    # CacheTier
    # ------------------------------------------------------------------

    def set(self, key: str, value: bytes, ttl_ms: int, priority: Priority = Priority.NORMAL) -> bool:
        if self.capacity <= 0:
            return False
        storage_key = self._storage_key(key)
        if self._read_raw(storage_key) is None and len(self) >= self.capacity:
            self._evict_oldest_batch()

        entry = CacheEntry(value=value, ttl_ms=ttl_ms, priority=priority)
        try:
            self.storage.set_item(storage_key, entry.to_bytes())
        except STORAGE_ERRORS as e:
            self.write_failures += 1
            self.logger.warning(f"{self.name} cache write skipped: {e}")
            return False
        return True

    def _evict_oldest_batch(self) -> int:
        """Evict the oldest share of entries by last access."""
        aged: List[Tuple[float, str]] = []
        for storage_key in self._cache_keys():
            entry = self._read_entry(storage_key)
            # Unreadable envelopes sort first so they are reclaimed before live data
            aged.append((entry.last_access if entry else float("-inf"), storage_key))

        if not aged:
            return 0

        aged.sort(key=lambda item: item[0])
        evict_count = max(1, math.ceil(len(aged) * self.batch_eviction_pct))
        evicted = sum(1 for _, storage_key in aged[:evict_count] if self._remove(storage_key))

        self.evictions += evicted
        self.logger.debug(f"Evicted {evicted}/{len(aged)} entries from {self.name} tier")
        return evicted

    def get(self, key: str) -> Optional[bytes]:
        storage_key = self._storage_key(key)
        entry = self._read_entry(storage_key)
        if entry is None:
            return None

        now = now_ms()
        if not entry.is_valid(now):
            return None

        entry.touch(now)
        try:
            self.storage.set_item(storage_key, entry.to_bytes())
        except STORAGE_ERRORS as e:
            self.logger.debug(f"Could not persist access bookkeeping for {key}: {e}")
        return entry.value

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Raw entry access for inspection, no bookkeeping."""
        return self._read_entry(self._storage_key(key))

    def delete(self, key: str) -> bool:
        storage_key = self._storage_key(key)
        if self._read_raw(storage_key) is None:
            return False
        return self._remove(storage_key)

    def cleanup(self) -> int:
        now = now_ms()
        removed = 0
        for storage_key in self._cache_keys():
            entry = self._read_entry(storage_key)
            if (entry is None or not entry.is_valid(now)) and self._remove(storage_key):
                removed += 1
        if removed:
            self.logger.debug(f"Removed {removed} expired entries from {self.name} tier")
        return removed

    def clear(self):
        for storage_key in self._cache_keys():
            self._remove(storage_key)

    def __len__(self) -> int:
        return len(self._cache_keys())

    def __contains__(self, key: str) -> bool:
        return self._read_raw(self._storage_key(key)) is not None

    def get_stats(self) -> dict:
        size = len(self)
        return {
            "tier_name": self.name,
            "size": size,
            "capacity": self.capacity,
            "default_ttl_ms": self.default_ttl_ms,
            "evictions": self.evictions,
            "write_failures": self.write_failures,
            "io_errors": self.io_errors,
            "storage_used_bytes": self.storage.used_bytes(),
            "capacity_used_pct": (size / self.capacity) * 100 if self.capacity else 0.0,
        }
