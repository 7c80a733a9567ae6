# tests/conftest.py
"""
Shared fixtures for the SalesDS test suite.

Every fixture writes beneath pytest's tmp_path so tests never touch the
working directory.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest

from salesds.cache_manager import CacheManager
from salesds.config import load_config
from salesds.interfaces import RemoteDocumentStore
from salesds.logger import SalesDSLogger
from salesds.records import RecordCoordinator
from salesds.registry import default_registry
from salesds.storage import DurableStorage, SessionStorage
from salesds.validation import Validator


@pytest.fixture(scope="session", autouse=True)
def _logging(tmp_path_factory):
    SalesDSLogger.setup(log_dir=str(tmp_path_factory.mktemp("logs")), log_level="DEBUG")


# =============================================================================
# SAMPLE RECORDS
# =============================================================================


def john_dsr(**overrides: Any) -> Dict[str, Any]:
    record = {
        "name": "John",
        "dsrId": "DSR001",
        "cluster": "North",
        "captainName": "A",
        "lastMonthActual": 100,
        "thisMonthActual": 110,
        "slab": "Gold",
    }
    record.update(overrides)
    return record


def stamped(record: Dict[str, Any], record_id: str = "rec-1") -> Dict[str, Any]:
    """Record with the audit fields add() would fill in."""
    now = datetime.now(timezone.utc)
    return {"id": record_id, **record, "createdAt": now, "updatedAt": now}


@pytest.fixture
def config(tmp_path):
    return load_config(overrides={"storage": {"base_path": str(tmp_path / "salesds")}})


@pytest.fixture
def durable_storage(tmp_path):
    return DurableStorage(tmp_path / "durable")


@pytest.fixture
def cache(durable_storage):
    return CacheManager(SessionStorage(), durable_storage)


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def validator(registry):
    return Validator(registry)


@pytest.fixture
def coordinator(registry, validator, cache):
    return RecordCoordinator(registry, validator, cache)


# =============================================================================
# REMOTE DOCUMENT STORE DOUBLE
# =============================================================================


class FakeRemote(RemoteDocumentStore):
    """In-memory document store recording every call."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[tuple] = []
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _check(self):
        if self.fail:
            raise RuntimeError("remote unavailable")

    async def add(self, collection, document):
        self.calls.append(("add", collection, document))
        self._check()
        self.collections.setdefault(collection, {})[document["id"]] = copy.deepcopy(document)
        return document

    async def update(self, collection, doc_id, document):
        self.calls.append(("update", collection, doc_id, document))
        self._check()
        self.collections.setdefault(collection, {})[doc_id] = copy.deepcopy(document)
        return document

    async def delete(self, collection, doc_id):
        self.calls.append(("delete", collection, doc_id))
        self._check()
        self.collections.get(collection, {}).pop(doc_id, None)

    async def list_all(self, collection):
        self._check()
        return [copy.deepcopy(d) for d in self.collections.get(collection, {}).values()]
