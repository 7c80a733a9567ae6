"""
Registry of named record stores.

Each store name maps to exactly one Store for the lifetime of the registry.
Field rules are fixed at registration time.
"""

from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping

from .exceptions import StoreNotFoundError
from .logger import get_logger
from .schema import DEFAULT_STORES, FieldRule, Relationship


class Store:
    """A named, schema-validated collection of records."""

    def __init__(self, name: str, schema: Mapping[str, FieldRule],
                 relationships: Iterable[Relationship] = ()):
        self.name = name
        self.schema: Mapping[str, FieldRule] = MappingProxyType(dict(schema))
        self.relationships = tuple(relationships)
        self.records: List[Dict[str, Any]] = []

    @property
    def cache_key(self) -> str:
        """Key of the store's collection in the cache manager."""
        return f"{self.name}-data"

    def find_index(self, record_id: str) -> int:
        """Position of the record with this id, or -1."""
        for i, record in enumerate(self.records):
            if record.get("id") == record_id:
                return i
        return -1

    def __len__(self) -> int:
        return len(self.records)

    def __repr__(self) -> str:
        return f"Store(name={self.name!r}, records={len(self.records)})"


class StoreRegistry:
    """Process-wide set of stores, one instance per name."""

    def __init__(self):
        self._stores: Dict[str, Store] = {}
        self.logger = get_logger("StoreRegistry")

    def register(self, name: str, schema: Mapping[str, FieldRule],
                 relationships: Iterable[str] = ()) -> Store:
        if name in self._stores:
            raise ValueError(f"Store {name} is already registered")

        parsed = [Relationship.parse(r) for r in relationships]
        for relationship in parsed:
            if relationship.target_store not in self._stores and relationship.target_store != name:
                self.logger.warning(f"Store {name} refers to unregistered store {relationship.target_store}")

        store = Store(name, schema, parsed)
        self._stores[name] = store
        self.logger.debug(f"Registered store {name} with {len(store.schema)} fields")
        return store

    def get(self, name: str) -> Store:
        store = self._stores.get(name)
        if store is None:
            raise StoreNotFoundError(name)
        return store

    def names(self) -> List[str]:
        return list(self._stores.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._stores

    def __iter__(self) -> Iterator[Store]:
        return iter(list(self._stores.values()))

    def __len__(self) -> int:
        return len(self._stores)

    def find_orphans(self, name: str) -> List[Dict[str, Any]]:
        """Records whose relationship fields match no record in the target store."""
        store = self.get(name)
        orphans = []
        for relationship in store.relationships:
            if relationship.target_store not in self._stores:
                continue
            target = self._stores[relationship.target_store]
            known = {r.get(relationship.target_field) for r in target.records}
            for record in store.records:
                value = record.get(relationship.field)
                if value is not None and value not in known:
                    orphans.append(dict(record))
        return orphans


def default_registry() -> StoreRegistry:
    """Registry holding the dashboard's sales, dsr, de and salesLog stores."""
    registry = StoreRegistry()
    for name, (schema, relationships) in DEFAULT_STORES.items():
        registry.register(name, schema, relationships)
    return registry
