"""Protocol interfaces for the planner's external collaborators.

These protocols define the contracts between the services and the
infrastructure that stores definitions, migrated records and schemas.
Using typing.Protocol enables structural subtyping (duck typing with type checking).
"""

from __future__ import annotations

from typing import Any, Protocol

from rolling_upgrade.core.models import SchemaGraphSnapshot
from rolling_upgrade.core.version import Version


class DefinitionSourceProtocol(Protocol):
    """Protocol for reading historical migration definition snapshots.

    Implementations must be safe to call from several threads at once; the
    stitcher fetches different tags concurrently.
    """

    def get_snapshot(self, schema_name: str, tag: str) -> SchemaGraphSnapshot:
        """Get a schema's definition graph as recorded at a version tag.

        Args:
            schema_name: Name of the schema (e.g. "frontend").
            tag: Version tag of the form "v{major}.{minor}.0".

        Returns:
            The snapshot for that tag.

        Raises:
            SnapshotNotFoundError: If no snapshot exists for the tag.
            DefinitionFetchError: If the source cannot be read.
        """
        ...


class RecordStoreProtocol(Protocol):
    """Protocol for the durable records an out-of-band migrator rewrites.

    Each record is a dict with at least an "id" key and a boolean
    "migrated" flag.
    """

    def count_records(self, migrated: bool | None = None) -> int:
        """Count records, optionally only those with the given migrated flag.

        Raises:
            StorageError: If the store cannot be read.
        """
        ...

    def fetch_records(self, migrated: bool, limit: int) -> list[dict[str, Any]]:
        """Fetch up to `limit` records with the given migrated flag.

        Which matching records make up the batch is unspecified; the batch
        itself is ordered by ID.

        Raises:
            StorageError: If the store cannot be read.
        """
        ...

    def write_records(self, records: list[dict[str, Any]]) -> None:
        """Replace the given records in a single atomic commit.

        Raises:
            StorageError: If the write fails; no record was changed.
        """
        ...


class SchemaApplierProtocol(Protocol):
    """Protocol for the engine that brings a schema up to a set of leaves."""

    def apply(self, schema_name: str, leaf_ids: tuple[int, ...], version: Version) -> None:
        """Apply every pending migration up to and including `leaf_ids`.

        Args:
            schema_name: Name of the schema to migrate.
            leaf_ids: Frontier migration IDs that must be at head afterwards.
            version: Instance version this step targets.
        """
        ...
