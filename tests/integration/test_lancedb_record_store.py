"""Integration tests for the LanceDB-backed record store.

Exercises a real LanceDB database in a temporary directory, both directly and
through RecordRewriteMigrator driven by MigratorRunner.
"""

from __future__ import annotations

import json
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from rolling_upgrade.adapters.lancedb_store import LanceDBRecordStore
from rolling_upgrade.config import Settings
from rolling_upgrade.core.errors import StorageError, ValidationError
from rolling_upgrade.core.tracing import ExecutionContext
from rolling_upgrade.factory import ServiceFactory
from rolling_upgrade.migrations import RecordRewriteMigrator
from rolling_upgrade.services.runner import MigratorRunner

pytestmark = pytest.mark.integration


def seed(count: int) -> list[dict[str, Any]]:
    return [
        {"id": f"changeset-{i:04d}", "payload": json.dumps({"raw": i}), "migrated": False}
        for i in range(count)
    ]


def forward(record: dict[str, Any]) -> dict[str, Any]:
    payload = json.loads(record["payload"])
    return {**record, "payload": json.dumps({"value": payload["raw"] * 2})}


def backward(record: dict[str, Any]) -> dict[str, Any]:
    payload = json.loads(record["payload"])
    return {**record, "payload": json.dumps({"raw": payload["value"] // 2})}


@pytest.fixture
def store(temp_storage: Path) -> Generator[LanceDBRecordStore, None, None]:
    """Provide a connected record store."""
    record_store = LanceDBRecordStore(temp_storage / "oob-data", "changeset_specs")
    record_store.connect()
    yield record_store
    record_store.close()


class TestLanceDBRecordStore:
    """Direct store operations."""

    def test_counts(self, store: LanceDBRecordStore) -> None:
        """Counts split by the migrated flag."""
        records = seed(5)
        records[1]["migrated"] = True
        store.insert_records(records)

        assert store.count_records() == 5
        assert store.count_records(migrated=True) == 1
        assert store.count_records(migrated=False) == 4

    def test_fetch_filtered_and_limited(self, store: LanceDBRecordStore) -> None:
        """Fetch returns at most `limit` matching records, sorted by ID."""
        records = list(reversed(seed(6)))
        records[0]["migrated"] = True
        store.insert_records(records)

        fetched = store.fetch_records(migrated=False, limit=3)
        ids = [r["id"] for r in fetched]

        assert len(ids) == 3
        assert ids == sorted(ids)
        assert all(not r["migrated"] for r in fetched)
        assert [r["id"] for r in store.fetch_records(migrated=True, limit=3)] == [
            "changeset-0005"
        ]
        assert len(store.fetch_records(migrated=False, limit=10)) == 5

    def test_null_flag_is_unmigrated(self, store: LanceDBRecordStore) -> None:
        """Records without a migrated flag are fetched as unmigrated."""
        store.insert_records([{"id": "changeset-0000", "payload": "{}", "migrated": None}])

        assert store.count_records(migrated=False) == 1
        assert [r["id"] for r in store.fetch_records(migrated=False, limit=5)] == [
            "changeset-0000"
        ]

    def test_write_replaces_by_id(self, store: LanceDBRecordStore) -> None:
        """write_records updates existing rows instead of appending."""
        store.insert_records(seed(3))

        store.write_records(
            [{"id": "changeset-0001", "payload": json.dumps({"value": 2}), "migrated": True}]
        )

        assert store.count_records() == 3
        migrated = store.fetch_records(migrated=True, limit=10)
        assert [r["id"] for r in migrated] == ["changeset-0001"]
        assert json.loads(migrated[0]["payload"]) == {"value": 2}

    def test_reopen_keeps_data(self, temp_storage: Path) -> None:
        """Records survive closing and reconnecting."""
        path = temp_storage / "reopen"
        first = LanceDBRecordStore(path, "records")
        first.connect()
        first.insert_records(seed(2))
        first.close()

        second = LanceDBRecordStore(path, "records")
        second.connect()
        assert second.count_records() == 2

    def test_not_connected(self, temp_storage: Path) -> None:
        """Using a store before connect() is a StorageError."""
        with pytest.raises(StorageError, match="not connected"):
            LanceDBRecordStore(temp_storage, "records").count_records()

    def test_invalid_table_name(self, temp_storage: Path) -> None:
        """Table names are restricted to identifiers."""
        with pytest.raises(ValidationError):
            LanceDBRecordStore(temp_storage, "records; drop")


class TestRecordRewriteOnLanceDB:
    """RecordRewriteMigrator against a real LanceDB table."""

    def test_drive_to_completion_and_back(self, store: LanceDBRecordStore) -> None:
        """A full drive rewrites every record and a reversal restores them."""
        store.insert_records(seed(25))
        migrator = RecordRewriteMigrator(store, forward, backward, batch_size=10)
        runner = MigratorRunner()
        ctx = ExecutionContext.create("drive-up", migration_id=1)

        up = runner.drive_to_completion(migrator, ctx)

        assert up.batches == 3
        assert migrator.progress(ctx) == 1.0
        migrated = store.fetch_records(migrated=True, limit=25)
        assert [json.loads(r["payload"])["value"] for r in migrated] == [
            2 * i for i in range(25)
        ]

        down = runner.drive_to_zero(migrator, ctx)

        assert down.batches == 3
        assert migrator.progress(ctx) == 0.0
        restored = store.fetch_records(migrated=False, limit=25)
        assert [json.loads(r["payload"])["raw"] for r in restored] == list(range(25))


class TestFactoryRecordStore:
    """Record stores built through ServiceFactory."""

    def test_factory_store_drives_migration(self, test_settings: Settings) -> None:
        """A factory-built store and migrator complete a drive under storage_path."""
        factory = ServiceFactory(test_settings)
        store = factory.create_record_store("changeset_specs")
        store.insert_records(seed(5))
        migrator = factory.create_record_migrator(store, forward, backward)

        factory.create_runner().drive_to_completion(migrator, ExecutionContext.create("drive-up"))

        assert store.count_records(migrated=True) == 5
        assert test_settings.storage_path.is_dir()
        store.close()
