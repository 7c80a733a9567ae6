"""
Storage interfaces for the cache tiers, their backing stores and the remote
document store collaborator.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .cache_entry import Priority


class KeyValueStorage(ABC):
    """String-keyed byte storage with a quota (session or durable scope)."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[bytes]:
        """Return the stored bytes or None if the key is absent."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: bytes):
        """
        Store bytes under key.
        Raises StorageQuotaError when the write cannot be accepted.
        """
        pass

    @abstractmethod
    def remove_item(self, key: str):
        """Remove key if present."""
        pass

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """List stored keys starting with prefix."""
        pass

    @abstractmethod
    def used_bytes(self) -> int:
        """Total bytes currently stored."""
        pass


class CacheTier(ABC):
    """Base interface for all cache tiers."""

    name: str
    capacity: int
    default_ttl_ms: int

    @abstractmethod
    def set(self, key: str, value: bytes, ttl_ms: int, priority: Priority = Priority.NORMAL) -> bool:
        """
        Store a serialized value, evicting first if the tier is full.
        Returns False if the tier could not accept the value.
        """
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the serialized value if present and not expired."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key. Returns True if something was removed."""
        pass

    @abstractmethod
    def cleanup(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        pass

    @abstractmethod
    def clear(self):
        """Remove every entry owned by this tier."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass

    @abstractmethod
    def get_stats(self) -> dict:
        """Get tier statistics (entry count, capacity, evictions)."""
        pass


class RemoteDocumentStore(ABC):
    """
    Remote document store holding one collection per store name.
    Responses are authoritative over local optimistic state.
    """

    @abstractmethod
    async def add(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        pass

    @abstractmethod
    async def list_all(self, collection: str) -> List[Dict[str, Any]]:
        pass
