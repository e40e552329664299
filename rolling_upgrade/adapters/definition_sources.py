"""Definition source adapters implementing DefinitionSourceProtocol.

Two sources are provided:

* InMemoryDefinitionSource keeps snapshots in a dict. Used by tests and by
  callers that assemble history themselves.
* FilesystemDefinitionSource reads one directory per release tag:

      <root>/
        v3.46.0/
          frontend/
            1528395787/
              metadata.json   {"name": "add owners", "parents": [1528395786]}
              up.sql
              down.sql
        v3.47.0/
          ...
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from rolling_upgrade.core.errors import DefinitionFetchError, SnapshotNotFoundError
from rolling_upgrade.core.models import MigrationDefinition, SchemaGraphSnapshot

logger = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"
UP_FILE = "up.sql"
DOWN_FILE = "down.sql"


class InMemoryDefinitionSource:
    """Definition source backed by a dict of snapshots.

    Example:
        source = InMemoryDefinitionSource()
        source.add_snapshot("frontend", "v1.0.0", [MigrationDefinition(...)])
        snapshot = source.get_snapshot("frontend", "v1.0.0")
    """

    def __init__(self, snapshots: Iterable[SchemaGraphSnapshot] = ()) -> None:
        self._lock = threading.Lock()
        self._snapshots: dict[tuple[str, str], SchemaGraphSnapshot] = {}
        for snapshot in snapshots:
            self._snapshots[(snapshot.schema_name, snapshot.tag)] = snapshot

    def add_snapshot(
        self,
        schema_name: str,
        tag: str,
        definitions: Iterable[MigrationDefinition],
    ) -> SchemaGraphSnapshot:
        """Record the definitions of a schema as they were at `tag`."""
        snapshot = SchemaGraphSnapshot(
            schema_name=schema_name,
            tag=tag,
            definitions=tuple(definitions),
        )
        with self._lock:
            self._snapshots[(schema_name, tag)] = snapshot
        return snapshot

    def get_snapshot(self, schema_name: str, tag: str) -> SchemaGraphSnapshot:
        with self._lock:
            snapshot = self._snapshots.get((schema_name, tag))
        if snapshot is None:
            raise SnapshotNotFoundError(schema_name, tag)
        return snapshot


class FilesystemDefinitionSource:
    """Definition source reading per-tag directories from disk."""

    def __init__(self, root: Path) -> None:
        """Initialize the source.

        Args:
            root: Directory containing one sub-directory per release tag.
        """
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def get_snapshot(self, schema_name: str, tag: str) -> SchemaGraphSnapshot:
        schema_dir = self._root / tag / schema_name
        if not schema_dir.is_dir():
            raise SnapshotNotFoundError(schema_name, tag)

        try:
            definition_dirs = sorted(
                (path for path in schema_dir.iterdir() if path.is_dir()),
                key=lambda path: path.name,
            )
            definitions = [
                self._read_definition(schema_name, tag, path) for path in definition_dirs
            ]
        except OSError as e:
            raise DefinitionFetchError(schema_name, tag, str(e)) from e

        logger.debug(f"Read {len(definitions)} {schema_name} definitions at {tag}")
        return SchemaGraphSnapshot(
            schema_name=schema_name,
            tag=tag,
            definitions=tuple(sorted(definitions, key=lambda d: d.id)),
        )

    def _read_definition(self, schema_name: str, tag: str, path: Path) -> MigrationDefinition:
        if not path.name.isdigit():
            raise DefinitionFetchError(
                schema_name, tag, f"definition directory {path.name!r} is not a numeric ID"
            )

        metadata = self._read_metadata(schema_name, tag, path)
        parents = metadata.get("parents", [])
        if not isinstance(parents, list) or not all(isinstance(p, int) for p in parents):
            raise DefinitionFetchError(
                schema_name, tag, f"migration {path.name}: 'parents' must be a list of integers"
            )

        return MigrationDefinition(
            id=int(path.name),
            schema_name=schema_name,
            name=str(metadata.get("name", "")),
            parents=tuple(parents),
            up_query=self._read_query(schema_name, tag, path / UP_FILE),
            down_query=self._read_query(schema_name, tag, path / DOWN_FILE),
        )

    def _read_metadata(self, schema_name: str, tag: str, path: Path) -> dict[str, Any]:
        metadata_path = path / METADATA_FILE
        if not metadata_path.exists():
            return {}
        try:
            metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DefinitionFetchError(
                schema_name, tag, f"migration {path.name}: malformed {METADATA_FILE}: {e}"
            ) from e
        if not isinstance(metadata, dict):
            raise DefinitionFetchError(
                schema_name, tag, f"migration {path.name}: {METADATA_FILE} must be an object"
            )
        return metadata

    def _read_query(self, schema_name: str, tag: str, path: Path) -> str:
        if not path.exists():
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise DefinitionFetchError(
                schema_name,
                tag,
                f"migration {path.parent.name}: {path.name} is not UTF-8: {e.reason}",
            ) from e
