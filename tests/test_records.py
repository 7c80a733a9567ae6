# tests/test_records.py
"""
Tests for the RecordCoordinator.

Covers:
- add / update / delete / query semantics and their failure modes
- Write-through refresh of the cached collection
- Access gating and remote document store propagation
- Import, export and per-store statistics
"""

import io
import json
from datetime import datetime, timezone

import pyarrow.parquet as pq
import pytest

from conftest import FakeRemote, john_dsr
from salesds.exceptions import (
    DuplicateIdError,
    NotFoundError,
    PermissionDeniedError,
    StoreNotFoundError,
    ValidationError,
)
from salesds.persistence import PersistenceSync
from salesds.records import RecordCoordinator
from salesds.schema import date_field, string_field


async def seed(coordinator, *records):
    return [await coordinator.add("dsr", record) for record in records]


# =============================================================================
# add
# =============================================================================


class TestAdd:

    @pytest.mark.asyncio
    async def test_john_is_added_with_generated_id(self, coordinator):
        result = await coordinator.add("dsr", john_dsr())

        assert result["id"]
        assert result["createdAt"] == result["updatedAt"]
        assert coordinator.query("dsr") == [result]

    @pytest.mark.asyncio
    async def test_added_record_is_found_by_id(self, coordinator):
        await seed(coordinator, john_dsr(dsrId="DSR002"))
        result = await coordinator.add("dsr", john_dsr())

        found = coordinator.query("dsr", filter=lambda r: r["id"] == result["id"])
        assert found == [result]

    @pytest.mark.asyncio
    async def test_caller_supplied_id_is_kept(self, coordinator):
        result = await coordinator.add("dsr", john_dsr(id="custom"))
        assert result["id"] == "custom"

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, coordinator):
        await coordinator.add("dsr", john_dsr(id="same"))
        with pytest.raises(DuplicateIdError):
            await coordinator.add("dsr", john_dsr(id="same", dsrId="DSR002"))
        assert len(coordinator.query("dsr")) == 1

    @pytest.mark.asyncio
    async def test_missing_name_leaves_store_and_cache_untouched(self, coordinator, cache):
        record = john_dsr()
        del record["name"]

        with pytest.raises(ValidationError) as exc_info:
            await coordinator.add("dsr", record)

        assert "name is required" in exc_info.value.errors
        assert "name is required" in str(exc_info.value)
        assert coordinator.query("dsr") == []
        assert cache.get("dsr-data", strategy="memory") is None

    @pytest.mark.asyncio
    async def test_unknown_store(self, coordinator):
        with pytest.raises(StoreNotFoundError):
            await coordinator.add("nope", {})

    @pytest.mark.asyncio
    async def test_input_mapping_is_not_mutated(self, coordinator):
        record = john_dsr()
        await coordinator.add("dsr", record)
        assert "id" not in record


# =============================================================================
# update / delete
# =============================================================================


class TestUpdateDelete:

    @pytest.mark.asyncio
    async def test_update_merges_patch(self, coordinator):
        original = await coordinator.add("dsr", john_dsr())

        updated = await coordinator.update("dsr", original["id"], {"thisMonthActual": 120, "slab": "Silver"})

        expected = {**original, "thisMonthActual": 120, "slab": "Silver"}
        [stored] = coordinator.query("dsr")
        assert {k: v for k, v in stored.items() if k != "updatedAt"} == \
               {k: v for k, v in expected.items() if k != "updatedAt"}
        assert stored["updatedAt"] >= original["updatedAt"]
        assert updated == stored

    @pytest.mark.asyncio
    async def test_update_revalidates_merged_record(self, coordinator):
        original = await coordinator.add("dsr", john_dsr())

        with pytest.raises(ValidationError) as exc_info:
            await coordinator.update("dsr", original["id"], {"thisMonthActual": 500})

        assert exc_info.value.errors == ["Growth rate cannot exceed 50%"]
        assert coordinator.query("dsr") == [original]

    @pytest.mark.asyncio
    async def test_update_cannot_change_id(self, coordinator):
        original = await coordinator.add("dsr", john_dsr())
        with pytest.raises(ValidationError):
            await coordinator.update("dsr", original["id"], {"id": "other"})

    @pytest.mark.asyncio
    async def test_update_missing_record(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.update("dsr", "ghost", {"slab": "Gold"})

    @pytest.mark.asyncio
    async def test_delete_returns_removed_and_second_delete_fails(self, coordinator):
        record = await coordinator.add("dsr", john_dsr())

        removed = await coordinator.delete("dsr", record["id"])

        assert removed == record
        assert coordinator.query("dsr", filter=lambda r: r["id"] == record["id"]) == []
        with pytest.raises(NotFoundError):
            await coordinator.delete("dsr", record["id"])


# =============================================================================
# Write-through cache
# =============================================================================


class TestWriteThrough:

    @pytest.mark.asyncio
    async def test_every_mutation_refreshes_cached_collection(self, coordinator, cache):
        record = await coordinator.add("dsr", john_dsr())
        assert cache.get("dsr-data", strategy="memory") == [record]

        updated = await coordinator.update("dsr", record["id"], {"slab": "Bronze"})
        assert cache.get("dsr-data", strategy="memory") == [updated]

        await coordinator.delete("dsr", record["id"])
        assert cache.get("dsr-data", strategy="memory") == []

    @pytest.mark.asyncio
    async def test_collection_uses_configured_ttl(self, registry, validator, cache, config):
        config.sync.collection_ttl_ms = 1234
        coordinator = RecordCoordinator(registry, validator, cache, config=config)
        await coordinator.add("dsr", john_dsr())
        assert cache.tiers["memory"].get_entry("dsr-data").ttl_ms == 1234


# =============================================================================
# query
# =============================================================================


class TestQuery:

    @pytest.mark.asyncio
    async def test_multi_key_sort(self, coordinator):
        await seed(
            coordinator,
            john_dsr(name="Cara", dsrId="DSR003", cluster="South", lastMonthActual=100),
            john_dsr(name="Abel", dsrId="DSR001", cluster="North", lastMonthActual=100),
            john_dsr(name="Bea", dsrId="DSR002", cluster="North", lastMonthActual=200, thisMonthActual=210),
        )

        results = coordinator.query("dsr", sort=[("cluster", "asc"), ("lastMonthActual", "desc")])

        assert [r["name"] for r in results] == ["Bea", "Abel", "Cara"]

    @pytest.mark.asyncio
    async def test_sort_is_stable_for_equal_keys(self, coordinator):
        await seed(coordinator, *(john_dsr(name=f"N{i}", dsrId=f"DSR00{i}") for i in range(4)))
        results = coordinator.query("dsr", sort={"cluster": "desc"})
        assert [r["name"] for r in results] == ["N0", "N1", "N2", "N3"]

    @pytest.mark.asyncio
    async def test_filter_then_paginate(self, coordinator):
        await seed(coordinator, *(john_dsr(name=f"N{i}", dsrId=f"DSR00{i}") for i in range(6)))

        page = coordinator.query("dsr", filter=lambda r: r["name"] != "N0",
                                 sort={"name": "asc"}, limit=2, offset=1)
        assert [r["name"] for r in page] == ["N2", "N3"]

        rest = coordinator.query("dsr", sort={"name": "asc"}, offset=4)
        assert [r["name"] for r in rest] == ["N4", "N5"]

        assert coordinator.query("dsr", limit=0) == []

    @pytest.mark.asyncio
    async def test_query_returns_copies(self, coordinator, registry):
        await coordinator.add("dsr", john_dsr())

        results = coordinator.query("dsr")
        results[0]["name"] = "Mallory"
        results.clear()

        assert registry.get("dsr").records[0]["name"] == "John"
        assert len(coordinator.query("dsr")) == 1


# =============================================================================
# Access gate and remote store
# =============================================================================


class TestAccessAndRemote:

    @pytest.mark.asyncio
    async def test_mutations_require_access(self, registry, validator, cache):
        coordinator = RecordCoordinator(registry, validator, cache, access_check=lambda: False)

        with pytest.raises(PermissionDeniedError):
            await coordinator.add("dsr", john_dsr())
        with pytest.raises(PermissionDeniedError):
            await coordinator.delete("dsr", "any")
        assert coordinator.query("dsr") == []

    @pytest.mark.asyncio
    async def test_mutations_reach_remote_as_snapshots(self, registry, validator, cache):
        remote = FakeRemote()
        coordinator = RecordCoordinator(registry, validator, cache, remote=remote)

        record = await coordinator.add("dsr", john_dsr())
        await coordinator.update("dsr", record["id"], {"slab": "Silver"})
        await coordinator.delete("dsr", record["id"])

        assert [call[0] for call in remote.calls] == ["add", "update", "delete"]
        assert remote.calls[0][2] == record
        assert remote.calls[1][3]["slab"] == "Silver"
        assert remote.collections["dsr"] == {}

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_local_change(self, registry, validator, cache):
        coordinator = RecordCoordinator(registry, validator, cache, remote=FakeRemote(fail=True))
        record = await coordinator.add("dsr", john_dsr())
        assert coordinator.query("dsr") == [record]

    @pytest.mark.asyncio
    async def test_sync_from_remote_replaces_records(self, registry, validator, cache):
        remote = FakeRemote()
        coordinator = RecordCoordinator(registry, validator, cache, remote=remote)
        await coordinator.add("dsr", john_dsr())
        # Remote state diverges from the optimistic local add
        remote.collections["dsr"] = {"r1": {"id": "r1", "name": "Remote"}}

        synced = await coordinator.sync_from_remote()

        assert synced["dsr"] == 1
        assert synced["sales"] == 0
        assert coordinator.query("dsr") == [{"id": "r1", "name": "Remote"}]
        assert cache.get("dsr-data", strategy="memory") == [{"id": "r1", "name": "Remote"}]

    @pytest.mark.asyncio
    async def test_synced_iso_timestamps_become_datetimes(self, registry, validator, cache):
        remote = FakeRemote()
        remote.collections["dsr"] = {"r1": {"id": "r1", **john_dsr(), "createdAt": "2024-03-01T10:00:00.000Z",
                                            "updatedAt": 1709287200000}}
        coordinator = RecordCoordinator(registry, validator, cache, remote=remote)

        await coordinator.sync_from_remote()
        record = coordinator.query("dsr")[0]

        assert record["createdAt"] == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
        assert record["updatedAt"] == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_update_and_save_after_sync(self, registry, validator, cache, durable_storage):
        remote = FakeRemote()
        remote.collections["dsr"] = {"r1": {"id": "r1", **john_dsr(), "createdAt": "2024-03-01T10:00:00.000Z",
                                            "updatedAt": "2024-03-01T10:00:00.000Z"}}
        coordinator = RecordCoordinator(registry, validator, cache, remote=remote)
        await coordinator.sync_from_remote()

        updated = await coordinator.update("dsr", "r1", {"thisMonthActual": 120})
        results = PersistenceSync(registry, durable_storage).save_all()

        assert updated["thisMonthActual"] == 120
        assert updated["updatedAt"] > updated["createdAt"]
        assert results["dsr"] is True

    @pytest.mark.asyncio
    async def test_import_parses_date_text(self, registry, validator, cache):
        registry.register("visits", {"id": string_field(), "visitedOn": date_field()})
        coordinator = RecordCoordinator(registry, validator, cache)

        results = await coordinator.import_records("visits", [{"visitedOn": "2024-03-05T09:30:00Z"},
                                                              {"visitedOn": "next tuesday"}])

        assert results["success"][0]["visitedOn"] == datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc)
        assert results["errors"][0]["error"] == "Validation failed: visitedOn must be a date"

    @pytest.mark.asyncio
    async def test_sync_without_remote_is_a_no_op(self, coordinator):
        assert await coordinator.sync_from_remote() == {}


# =============================================================================
# Bulk operations
# =============================================================================


class TestBulk:

    @pytest.mark.asyncio
    async def test_import_collects_failures(self, coordinator):
        bad = john_dsr(dsrId="nope")
        results = await coordinator.import_records("dsr", [john_dsr(), bad])

        assert len(results["success"]) == 1
        assert results["errors"] == [{"data": bad, "error": "Validation failed: dsrId format is invalid"}]

    @pytest.mark.asyncio
    async def test_import_single_mapping(self, coordinator):
        results = await coordinator.import_records("dsr", john_dsr())
        assert len(results["success"]) == 1

    @pytest.mark.asyncio
    async def test_export_json(self, coordinator):
        record = await coordinator.add("dsr", john_dsr())
        exported = json.loads(coordinator.export("dsr", "json"))
        assert exported[0]["id"] == record["id"]
        assert exported[0]["createdAt"] == {"__datetime__": record["createdAt"].isoformat()}

    @pytest.mark.asyncio
    async def test_export_csv(self, coordinator):
        await coordinator.add("dsr", john_dsr())
        lines = coordinator.export("dsr", "csv").splitlines()
        assert len(lines) == 2
        assert '"name"' in lines[0]
        assert '"John"' in lines[1]

    @pytest.mark.asyncio
    async def test_export_parquet(self, coordinator):
        await seed(coordinator, john_dsr(), john_dsr(dsrId="DSR002"))
        table = pq.read_table(io.BytesIO(coordinator.export("dsr", "parquet")))
        assert table.num_rows == 2
        assert table.column("dsrId").to_pylist() == ["DSR001", "DSR002"]

    def test_export_unknown_format(self, coordinator):
        with pytest.raises(ValueError):
            coordinator.export("dsr", "xml")

    @pytest.mark.asyncio
    async def test_statistics(self, coordinator):
        record = await coordinator.add("dsr", john_dsr())
        stats = coordinator.get_statistics()
        assert stats["dsr"]["count"] == 1
        assert stats["dsr"]["last_updated"] == record["updatedAt"]
        assert stats["sales"] == {"count": 0, "last_updated": None, "schema_fields": 7}
