"""
Persistence sync: snapshots every store's records into durable storage and
restores them at startup.

Each store is written independently under ``data-<store>`` as an Arrow IPC
stream, so one store failing to encode never blocks the others. Loading
replaces a store's records wholesale.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pyarrow as pa

from .exceptions import SerializationError, StorageQuotaError
from .interfaces import KeyValueStorage
from .logger import get_logger
from .registry import Store, StoreRegistry
from .serialization import decode_snapshot, encode_snapshot, records_to_table, table_to_records
from .storage import SNAPSHOT_PREFIX

SNAPSHOT_VERSION = "2"


def snapshot_key(store_name: str) -> str:
    return f"{SNAPSHOT_PREFIX}{store_name}"


class PersistenceSync:
    """Saves and loads store snapshots."""

    def __init__(self, registry: StoreRegistry, storage: KeyValueStorage, on_load=None):
        """
        Args:
            registry: Stores to persist.
            storage: Durable key/value storage receiving the snapshots.
            on_load: Optional callable(store) run after a store is replaced
                by load_all (used to refresh the cached collection).
        """
        self.registry = registry
        self.storage = storage
        self.on_load = on_load
        self.save_count = 0
        self.logger = get_logger("PersistenceSync")

    def save_store(self, store: Store, records: Optional[List[Dict[str, Any]]] = None):
        """
        Snapshot one store, or the given copy of its record list.
        Raises SerializationError or StorageQuotaError.
        """
        table = records_to_table(
            store.records if records is None else records, store.schema,
            metadata={"store": store.name, "version": SNAPSHOT_VERSION},
        )
        try:
            payload = encode_snapshot(table)
        except pa.ArrowException as e:
            raise SerializationError(f"Snapshot of {store.name} failed: {e}") from e
        self.storage.set_item(snapshot_key(store.name), payload)

    def _save_snapshots(self, snapshots: Dict[str, List[Dict[str, Any]]]) -> Dict[str, bool]:
        results = {}
        for name, records in snapshots.items():
            try:
                self.save_store(self.registry.get(name), records)
                results[name] = True
            except (SerializationError, StorageQuotaError) as e:
                self.logger.error(f"Failed to save {name} data: {e}")
                results[name] = False

        self.save_count += 1
        self.logger.debug(f"Saved {sum(results.values())}/{len(results)} stores")
        return results

    def _take_snapshots(self) -> Dict[str, List[Dict[str, Any]]]:
        # Record dicts are replaced on mutation, never edited in place
        return {store.name: list(store.records) for store in self.registry}

    def save_all(self) -> Dict[str, bool]:
        """Snapshot every store. Returns per-store success."""
        return self._save_snapshots(self._take_snapshots())

    async def save_all_async(self) -> Dict[str, bool]:
        """
        Snapshot every store with the encoding and fsync'd writes done in the
        default executor. The record lists are captured before yielding.
        """
        snapshots = self._take_snapshots()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._save_snapshots, snapshots)

    def load_store(self, store: Store) -> Optional[int]:
        """
        Replace a store's records from its snapshot.

        Returns the number of records loaded, or None if no snapshot exists
        or it could not be read. A corrupt snapshot empties the store.
        """
        try:
            raw = self.storage.get_item(snapshot_key(store.name))
        except StorageQuotaError as e:
            self.logger.error(f"Could not read {store.name} snapshot, keeping current records: {e}")
            return None
        if raw is None:
            return None

        try:
            table = decode_snapshot(raw)
            records = table_to_records(table)
        except (pa.ArrowException, ValueError, TypeError) as e:
            self.logger.error(f"Failed to load {store.name} data, starting empty: {e}")
            records = []

        store.records = records
        if self.on_load is not None:
            self.on_load(store)
        return len(records)

    def load_all(self) -> Dict[str, int]:
        """Restore every store that has a snapshot. Returns loaded record counts."""
        loaded = {}
        for store in self.registry:
            count = self.load_store(store)
            if count is not None:
                loaded[store.name] = count

        self.logger.info(f"Loaded snapshots for {len(loaded)} stores: {loaded}")
        return loaded
