"""
SalesDS: caching and data-synchronization layer for the sales dashboard.

- Cache tiers: memory (strict LRU), session and durable (batch eviction)
- Record stores: sales, dsr, de and salesLog, each schema-validated
- Persistence: store snapshots in durable storage, saved periodically

Reads hit the in-memory record lists; every mutation re-sets the store's
cached collection before returning.
"""

from .salesds import SalesDS
from .cache_manager import CacheManager
from .config import SalesDSConfig, load_config
from .exceptions import (
    SalesDSError,
    ValidationError,
    DuplicateIdError,
    NotFoundError,
    StoreNotFoundError,
    PermissionDeniedError,
    StorageQuotaError,
    SerializationError,
)
from .interfaces import CacheTier, KeyValueStorage, RemoteDocumentStore
from .persistence import PersistenceSync
from .records import RecordCoordinator
from .registry import Store, StoreRegistry, default_registry
from .validation import Validator, ValidationResult

__all__ = [
    'SalesDS',
    'CacheManager',
    'SalesDSConfig',
    'load_config',
    'SalesDSError',
    'ValidationError',
    'DuplicateIdError',
    'NotFoundError',
    'StoreNotFoundError',
    'PermissionDeniedError',
    'StorageQuotaError',
    'SerializationError',
    'CacheTier',
    'KeyValueStorage',
    'RemoteDocumentStore',
    'PersistenceSync',
    'RecordCoordinator',
    'Store',
    'StoreRegistry',
    'default_registry',
    'Validator',
    'ValidationResult',
]
