"""
Record CRUD coordinator.

Mutations are applied to the store's record list and the store's cached
collection is re-set before the call first yields, so a read issued after an
awaited mutation always sees the new state. A configured remote document
store is then updated from a snapshot taken at issuance time.
"""

import copy
import functools
import io
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pyarrow.csv as pa_csv
import pyarrow.parquet as pq

from .cache_manager import CacheManager
from .exceptions import (
    DuplicateIdError,
    NotFoundError,
    PermissionDeniedError,
    SalesDSError,
    ValidationError,
)
from .interfaces import RemoteDocumentStore
from .logger import get_logger
from .registry import Store, StoreRegistry
from .serialization import TaggedJSONEncoder, coerce_datetime, normalize_dates, records_to_table
from .validation import Validator

Record = Dict[str, Any]
SortSpec = Union[Mapping[str, str], Sequence[Tuple[str, str]]]


def generate_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _restamp(previous: Any) -> datetime:
    """A fresh update time that never precedes the previous one."""
    now = utc_now()
    if isinstance(previous, datetime) and previous.tzinfo is not None and previous > now:
        return previous
    return now


def _compare_values(a: Any, b: Any) -> int:
    # Missing values sort before present ones
    if a is None and b is None:
        return 0
    if a is None:
        return -1
    if b is None:
        return 1
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def _sort_records(records: List[Record], sort: SortSpec) -> List[Record]:
    keys = list(sort.items()) if isinstance(sort, Mapping) else list(sort)

    def compare(a: Record, b: Record) -> int:
        for field, direction in keys:
            result = _compare_values(a.get(field), b.get(field))
            if result != 0:
                return -result if direction == "desc" else result
        return 0

    return sorted(records, key=functools.cmp_to_key(compare))


class RecordCoordinator:
    """Add, update, delete and query records of the registered stores."""

    def __init__(self, registry: StoreRegistry, validator: Validator, cache: CacheManager,
                 remote: Optional[RemoteDocumentStore] = None,
                 access_check: Optional[Callable[[], bool]] = None,
                 collection_ttl_ms: int = 5 * 60 * 1000, config=None):
        self.registry = registry
        self.validator = validator
        self.cache = cache
        self.remote = remote
        self.access_check = access_check
        self.collection_ttl_ms = config.sync.collection_ttl_ms if config is not None else collection_ttl_ms
        self.logger = get_logger("RecordCoordinator")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_write_access(self, operation: str):
        if self.access_check is not None and not self.access_check():
            raise PermissionDeniedError(f"{operation} requires an authenticated session")

    def _validate(self, store_name: str, record: Record):
        result = self.validator.validate(store_name, record)
        if not result.valid:
            raise ValidationError(result.errors)

    def refresh_cache(self, store: Store):
        """Write-through: re-set the store's cached collection from its records."""
        self.cache.set(store.cache_key, store.records, strategy="memory", ttl_ms=self.collection_ttl_ms)

    async def _push_remote(self, operation: str, store_name: str, *args):
        if self.remote is None:
            return None
        try:
            result = await getattr(self.remote, operation)(store_name, *args)
            self.logger.debug(f"Remote {operation} on {store_name} succeeded")
            return result
        except Exception as e:
            # Local state stays; the next remote sync reconciles it
            self.logger.warning(f"Remote {operation} on {store_name} failed: {e}")
            return None

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def add(self, store_name: str, data: Mapping[str, Any]) -> Record:
        """Validate and append a record. Returns the stored record."""
        self._require_write_access("add")
        store = self.registry.get(store_name)

        now = utc_now()
        record = normalize_dates(data, store.schema)
        record["id"] = data.get("id") or generate_id()
        record["createdAt"] = now
        record["updatedAt"] = now

        self._validate(store_name, record)
        if store.find_index(record["id"]) != -1:
            raise DuplicateIdError(store_name, record["id"])

        store.records.append(record)
        self.refresh_cache(store)
        self.logger.debug(f"Added {record['id']} to {store_name}")

        snapshot = copy.deepcopy(record)
        await self._push_remote("add", store_name, snapshot)
        return dict(record)

    async def update(self, store_name: str, record_id: str, patch: Mapping[str, Any]) -> Record:
        """Merge patch into a record and revalidate the whole result."""
        self._require_write_access("update")
        store = self.registry.get(store_name)

        index = store.find_index(record_id)
        if index == -1:
            raise NotFoundError(store_name, record_id)

        current = store.records[index]
        if "id" in patch and patch["id"] != record_id:
            raise ValidationError(["id cannot be changed"])

        updated = normalize_dates({**current, **patch}, store.schema)
        updated["updatedAt"] = _restamp(coerce_datetime(current.get("updatedAt")))

        self._validate(store_name, updated)

        store.records[index] = updated
        self.refresh_cache(store)
        self.logger.debug(f"Updated {record_id} in {store_name}")

        snapshot = copy.deepcopy(updated)
        await self._push_remote("update", store_name, record_id, snapshot)
        return dict(updated)

    async def delete(self, store_name: str, record_id: str) -> Record:
        """Remove a record. Returns the removed record."""
        self._require_write_access("delete")
        store = self.registry.get(store_name)

        index = store.find_index(record_id)
        if index == -1:
            raise NotFoundError(store_name, record_id)

        removed = store.records.pop(index)
        self.refresh_cache(store)
        self.logger.debug(f"Deleted {record_id} from {store_name}")

        await self._push_remote("delete", store_name, record_id)
        return removed

    def query(self, store_name: str, filter: Optional[Callable[[Record], bool]] = None,
              sort: Optional[SortSpec] = None, limit: Optional[int] = None,
              offset: int = 0) -> List[Record]:
        """
        Return copies of the store's records, filtered, then sorted, then paginated.

        Args:
            filter: Predicate applied to each record.
            sort: Mapping or sequence of (field, "asc"|"desc") pairs, applied
                in order; later keys break ties of earlier ones.
            limit: Maximum number of records, None for all remaining.
            offset: Number of leading records to skip.
        """
        store = self.registry.get(store_name)

        results = [dict(record) for record in store.records]
        if filter is not None:
            results = [record for record in results if filter(record)]
        if sort:
            results = _sort_records(results, sort)

        offset = offset or 0
        end = None if limit is None else offset + limit
        return results[offset:end]

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def import_records(self, store_name: str, rows: Union[Mapping[str, Any], Iterable[Mapping[str, Any]]]) -> dict:
        """Add each row independently, collecting successes and failures."""
        if isinstance(rows, Mapping):
            rows = [rows]

        results = {"success": [], "errors": []}
        for row in rows:
            try:
                results["success"].append(await self.add(store_name, row))
            except SalesDSError as e:
                results["errors"].append({"data": row, "error": str(e)})

        self.logger.info(f"Imported {len(results['success'])} records into {store_name}, "
                         f"{len(results['errors'])} rejected")
        return results

    def export(self, store_name: str, fmt: str = "json") -> Union[str, bytes]:
        """Export a store's records as JSON text, CSV text or Parquet bytes."""
        store = self.registry.get(store_name)

        if fmt == "json":
            return json.dumps(store.records, cls=TaggedJSONEncoder, indent=2)

        table = records_to_table(store.records, store.schema)
        if fmt == "csv":
            sink = io.BytesIO()
            pa_csv.write_csv(table, sink)
            return sink.getvalue().decode("utf-8")
        elif fmt == "parquet":
            sink = io.BytesIO()
            pq.write_table(table, sink)
            return sink.getvalue()
        raise ValueError(f"Unsupported format: {fmt}")

    async def sync_from_remote(self) -> Dict[str, int]:
        """Replace every store's records with the remote collection. Returns counts."""
        synced = {}
        if self.remote is None:
            return synced

        for store in self.registry:
            try:
                documents = await self.remote.list_all(store.name)
            except Exception as e:
                self.logger.error(f"Remote sync of {store.name} failed: {e}")
                continue
            store.records = [normalize_dates(document, store.schema) for document in documents]
            self.refresh_cache(store)
            synced[store.name] = len(store.records)

        self.logger.info(f"Remote sync complete: {synced}")
        return synced

    def get_statistics(self) -> Dict[str, dict]:
        """Record count, latest update time and field count per store."""
        stats = {}
        for store in self.registry:
            stamps = [r["updatedAt"] for r in store.records if isinstance(r.get("updatedAt"), datetime)]
            stats[store.name] = {
                "count": len(store.records),
                "last_updated": max(stamps) if stamps else None,
                "schema_fields": len(store.schema),
            }
        return stats
