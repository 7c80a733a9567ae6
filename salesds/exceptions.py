"""
Exception taxonomy for SalesDS.

Validation and lookup errors propagate to the immediate caller. Storage and
serialization errors are caught inside the cache manager and persistence
sync and never escape them.
"""

from typing import List


class SalesDSError(Exception):
    """Base class for all SalesDS errors."""


class ValidationError(SalesDSError):
    """A record failed field or business-rule validation."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class DuplicateIdError(SalesDSError):
    """A record with the same id already exists in the store."""

    def __init__(self, store_name: str, record_id: str):
        self.store_name = store_name
        self.record_id = record_id
        super().__init__(f"Record with id {record_id} already exists in {store_name}")


class NotFoundError(SalesDSError):
    """No record with the given id exists in the store."""

    def __init__(self, store_name: str, record_id: str):
        self.store_name = store_name
        self.record_id = record_id
        super().__init__(f"Record with id {record_id} not found in {store_name}")


class StoreNotFoundError(SalesDSError):
    """The named store was never registered."""

    def __init__(self, store_name: str):
        self.store_name = store_name
        super().__init__(f"Store {store_name} not found")


class PermissionDeniedError(SalesDSError):
    """A mutating operation was attempted without write access."""


class StorageQuotaError(SalesDSError):
    """A backing store refused a write (quota exceeded or I/O failure)."""


class SerializationError(SalesDSError):
    """A value could not be serialized for caching or persistence."""
