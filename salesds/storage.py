"""
Key/value backing stores for the session and durable cache tiers.

SessionStorage lives for the lifetime of the process. DurableStorage keeps
one file per key in a directory and survives restarts; it is shared by the
durable cache tier (``cache_<key>``) and persistence sync (``data-<store>``).
"""

import os
import threading
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from .exceptions import StorageQuotaError
from .interfaces import KeyValueStorage
from .logger import get_logger


CACHE_PREFIX = "cache_"
SNAPSHOT_PREFIX = "data-"
RESERVED_PREFIXES = (CACHE_PREFIX, SNAPSHOT_PREFIX)


class SessionStorage(KeyValueStorage):
    """In-process byte storage bounded by a quota."""

    def __init__(self, quota_bytes: int = 5 * 1024 * 1024):
        self.quota_bytes = quota_bytes
        self._items: Dict[str, bytes] = {}
        self._used = 0

    def get_item(self, key: str) -> Optional[bytes]:
        return self._items.get(key)

    def set_item(self, key: str, value: bytes):
        old_size = len(self._items.get(key, b""))
        new_used = self._used - old_size + len(value)
        if new_used > self.quota_bytes:
            raise StorageQuotaError(
                f"Session storage quota exceeded writing {key}: {new_used} > {self.quota_bytes} bytes"
            )
        self._items[key] = value
        self._used = new_used

    def remove_item(self, key: str):
        value = self._items.pop(key, None)
        if value is not None:
            self._used -= len(value)

    def keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._items if key.startswith(prefix)]

    def used_bytes(self) -> int:
        return self._used


class DurableStorage(KeyValueStorage):
    """
    Directory-backed byte storage. One file per key, fsync on write.

    Safe to share between the event loop and an executor thread: the size
    table is guarded by a lock. Any OS error surfaces as StorageQuotaError.
    """

    FILE_SUFFIX = ".kv"

    def __init__(self, directory: Path, quota_bytes: int = 5 * 1024 * 1024):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.quota_bytes = quota_bytes
        self.logger = get_logger("DurableStorage")
        self._lock = threading.Lock()
        self._sizes: Dict[str, int] = self._discover_existing_items()

    def _get_item_path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.FILE_SUFFIX}"

    def _discover_existing_items(self) -> Dict[str, int]:
        """Find items written by a previous process."""
        sizes = {}
        for file_path in self.directory.glob(f"*{self.FILE_SUFFIX}"):
            key = unquote(file_path.name[:-len(self.FILE_SUFFIX)])
            sizes[key] = file_path.stat().st_size
        if sizes:
            self.logger.info(f"Found {len(sizes)} durable items in {self.directory}")
        return sizes

    def get_item(self, key: str) -> Optional[bytes]:
        with self._lock:
            if key not in self._sizes:
                return None
        try:
            return self._get_item_path(key).read_bytes()
        except FileNotFoundError:
            with self._lock:
                self._sizes.pop(key, None)
            return None
        except OSError as e:
            raise StorageQuotaError(f"Durable read failed for {key}: {e}") from e

    def set_item(self, key: str, value: bytes):
        with self._lock:
            new_used = sum(self._sizes.values()) - self._sizes.get(key, 0) + len(value)
            if new_used > self.quota_bytes:
                raise StorageQuotaError(
                    f"Durable storage quota exceeded writing {key}: {new_used} > {self.quota_bytes} bytes"
                )
            # Reserve the space before writing outside the lock
            self._sizes[key] = max(self._sizes.get(key, 0), len(value))

        item_path = self._get_item_path(key)
        tmp_path = item_path.with_name(item_path.name + f".{threading.get_ident()}.tmp")
        try:
            with open(tmp_path, 'wb') as f:
                f.write(value)
                # Force sync to disk before the rename makes it visible
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, item_path)
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            with self._lock:
                if item_path.exists():
                    self._sizes[key] = item_path.stat().st_size
                else:
                    self._sizes.pop(key, None)
            raise StorageQuotaError(f"Durable write failed for {key}: {e}") from e

        with self._lock:
            self._sizes[key] = len(value)

    def remove_item(self, key: str):
        try:
            self._get_item_path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageQuotaError(f"Durable remove failed for {key}: {e}") from e
        with self._lock:
            self._sizes.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return [key for key in self._sizes if key.startswith(prefix)]

    def used_bytes(self) -> int:
        with self._lock:
            return sum(self._sizes.values())

    def get_stats(self) -> dict:
        with self._lock:
            item_count = len(self._sizes)
            used = sum(self._sizes.values())
        return {
            "item_count": item_count,
            "used_bytes": used,
            "quota_bytes": self.quota_bytes,
            "directory": str(self.directory),
        }
