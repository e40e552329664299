"""LanceDB record store adapter implementing RecordStoreProtocol.

Out-of-band migrators rewrite records in place and flag each one as
migrated. Keeping the flag next to the record in LanceDB means progress is
always computed from durable state, so a drive interrupted by a crash
resumes where the last committed batch left off.

Each table holds:
    id        string   primary key used for merge_insert
    payload   string   serialized record body rewritten by the migrator
    migrated  bool     whether the payload is in the new format
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import lancedb
import pyarrow as pa

from rolling_upgrade.core.errors import StorageError, ValidationError

if TYPE_CHECKING:
    from lancedb.table import Table as LanceTable

logger = logging.getLogger(__name__)

RECORD_SCHEMA = pa.schema([
    pa.field("id", pa.string()),
    pa.field("payload", pa.string()),
    pa.field("migrated", pa.bool_()),
])


class LanceDBRecordStore:
    """Record store for one out-of-band migration, backed by a LanceDB table.

    Example:
        store = LanceDBRecordStore(Path("./.oob-data"), "changeset_specs")
        store.connect()
        store.insert_records([{"id": "1", "payload": "{}", "migrated": False}])
        store.count_records(migrated=False)
    """

    def __init__(self, storage_path: Path, table_name: str) -> None:
        """Initialize the store.

        Args:
            storage_path: Directory holding the LanceDB database.
            table_name: Name of the table holding the migration's records.
        """
        if not table_name or not table_name.replace("_", "").isalnum():
            raise ValidationError(f"Invalid table name: {table_name!r}")
        self._storage_path = Path(storage_path)
        self._table_name = table_name
        self._db: lancedb.DBConnection | None = None
        self._table: LanceTable | None = None

    @property
    def table(self) -> LanceTable:
        if self._table is None:
            raise StorageError("Record store not connected")
        return self._table

    def connect(self) -> None:
        """Open the database, creating the records table if needed.

        Raises:
            StorageError: If the database cannot be opened.
        """
        try:
            self._storage_path.mkdir(parents=True, exist_ok=True)
            self._db = lancedb.connect(str(self._storage_path))

            existing_tables_result = self._db.list_tables()
            # Handle both old (list) and new (object with .tables) LanceDB API
            if hasattr(existing_tables_result, "tables"):
                existing_tables = existing_tables_result.tables
            else:
                existing_tables = existing_tables_result

            if self._table_name not in existing_tables:
                try:
                    self._table = self._db.create_table(self._table_name, schema=RECORD_SCHEMA)
                    logger.info(f"Created record table {self._table_name}")
                except Exception as create_err:
                    # Table might have been created by another process
                    if "already exists" in str(create_err).lower():
                        self._table = self._db.open_table(self._table_name)
                    else:
                        raise
            else:
                self._table = self._db.open_table(self._table_name)
                logger.debug(f"Opened record table {self._table_name}")
        except Exception as e:
            raise StorageError(f"Failed to open record store: {e}") from e

    def close(self) -> None:
        self._table = None
        self._db = None

    def insert_records(self, records: list[dict[str, Any]]) -> None:
        """Append new records (used to seed a store)."""
        if not records:
            return
        try:
            self.table.add(pa.Table.from_pylist(records, schema=RECORD_SCHEMA))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert records: {e}") from e

    def count_records(self, migrated: bool | None = None) -> int:
        try:
            total: int = self.table.count_rows()
            if migrated is None:
                return total
            done: int = self.table.count_rows("migrated = true")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to count records: {e}") from e
        return done if migrated else total - done

    def fetch_records(self, migrated: bool, limit: int) -> list[dict[str, Any]]:
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        try:
            # Null flags count as unmigrated, matching count_records
            where = "migrated = true" if migrated else "migrated = false OR migrated IS NULL"
            batch = self.table.search().where(where).limit(limit).to_arrow()
            records: list[dict[str, Any]] = batch.sort_by("id").to_pylist()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to fetch records: {e}") from e
        return records

    def write_records(self, records: list[dict[str, Any]]) -> None:
        """Replace records by ID in one merge_insert commit.

        LanceDB commits a merge_insert as a single table version, so either
        the whole batch becomes visible or none of it does.
        """
        if not records:
            return
        try:
            data = pa.Table.from_pylist(records, schema=RECORD_SCHEMA)
            (
                self.table.merge_insert("id")
                .when_matched_update_all()
                .execute(data)
            )
            logger.debug(f"Rewrote {len(records)} records in {self._table_name}")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write records: {e}") from e
