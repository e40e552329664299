"""Pytest fixtures for rolling-upgrade tests."""

from __future__ import annotations

import tempfile
from collections.abc import Generator, Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from rolling_upgrade.adapters.definition_sources import InMemoryDefinitionSource
from rolling_upgrade.config import Settings, override_settings, reset_settings
from rolling_upgrade.core.models import MigrationDefinition
from rolling_upgrade.core.oobmigration import MigrationRegistry, Migrator
from rolling_upgrade.core.tracing import ExecutionContext
from rolling_upgrade.core.version import VersionTable

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class ScriptedMigrator(Migrator):
    """Migrator whose progress follows a fixed script.

    Each progress() call returns the next scripted value; once the script
    runs out the last value repeats. up()/down() calls are counted and can
    be made to raise.
    """

    def __init__(
        self,
        progress_values: Sequence[float],
        fail_on_up: BaseException | None = None,
        fail_on_down: BaseException | None = None,
    ) -> None:
        self._values = list(progress_values)
        self._index = 0
        self.fail_on_up = fail_on_up
        self.fail_on_down = fail_on_down
        self.up_calls = 0
        self.down_calls = 0
        self.progress_calls = 0

    def progress(self, ctx: ExecutionContext) -> float:
        self.progress_calls += 1
        value = self._values[min(self._index, len(self._values) - 1)]
        self._index += 1
        return value

    def up(self, ctx: ExecutionContext) -> None:
        self.up_calls += 1
        if self.fail_on_up is not None:
            raise self.fail_on_up

    def down(self, ctx: ExecutionContext) -> None:
        self.down_calls += 1
        if self.fail_on_down is not None:
            raise self.fail_on_down


class CountingMigrator(Migrator):
    """Migrator over `total` units that moves `step` units per batch."""

    def __init__(self, total: int = 10, done: int = 0, step: int = 3) -> None:
        self.total = total
        self.done = done
        self.step = step
        self.up_calls = 0
        self.down_calls = 0

    def progress(self, ctx: ExecutionContext) -> float:
        return self.done / self.total

    def up(self, ctx: ExecutionContext) -> None:
        self.up_calls += 1
        self.done = min(self.total, self.done + self.step)

    def down(self, ctx: ExecutionContext) -> None:
        self.down_calls += 1
        self.done = max(0, self.done - self.step)


class InMemoryRecordStore:
    """Dict-backed RecordStoreProtocol implementation."""

    def __init__(self, records: Iterable[dict[str, Any]] = ()) -> None:
        self.records: dict[str, dict[str, Any]] = {r["id"]: dict(r) for r in records}
        self.writes = 0

    def count_records(self, migrated: bool | None = None) -> int:
        if migrated is None:
            return len(self.records)
        return sum(1 for r in self.records.values() if bool(r["migrated"]) is migrated)

    def fetch_records(self, migrated: bool, limit: int) -> list[dict[str, Any]]:
        matching = [
            dict(self.records[key])
            for key in sorted(self.records)
            if bool(self.records[key]["migrated"]) is migrated
        ]
        return matching[:limit]

    def write_records(self, records: list[dict[str, Any]]) -> None:
        self.writes += 1
        for record in records:
            self.records[record["id"]] = dict(record)


def definition(
    migration_id: int,
    parents: Sequence[int] = (),
    schema_name: str = "frontend",
    name: str = "",
) -> MigrationDefinition:
    """Build a MigrationDefinition with terse arguments."""
    return MigrationDefinition(
        id=migration_id,
        schema_name=schema_name,
        name=name or f"migration {migration_id}",
        parents=tuple(parents),
        up_query=f"-- up {migration_id}",
        down_query=f"-- down {migration_id}",
    )


def build_source(
    history: Mapping[str, Mapping[str, Sequence[tuple[int, Sequence[int]]]]],
) -> InMemoryDefinitionSource:
    """Build a definition source from {schema: {tag: [(id, parents), ...]}}."""
    source = InMemoryDefinitionSource()
    for schema_name, snapshots in history.items():
        for tag, nodes in snapshots.items():
            source.add_snapshot(
                schema_name,
                tag,
                [definition(i, parents, schema_name=schema_name) for i, parents in nodes],
            )
    return source


# ---------------------------------------------------------------------------
# Basic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def temp_storage() -> Generator[Path, None, None]:
    """Provide temporary storage directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_settings(temp_storage: Path) -> Generator[Settings, None, None]:
    """Provide test settings rooted in temp storage."""
    settings = Settings(
        definitions_path=temp_storage / "definitions",
        lease_dir=temp_storage / "leases",
        storage_path=temp_storage / "data",
        schema_names=["frontend"],
        log_level="DEBUG",
    )
    override_settings(settings)
    yield settings
    reset_settings()


@pytest.fixture
def ctx() -> ExecutionContext:
    """Provide a fresh execution context."""
    return ExecutionContext.create("test")


@pytest.fixture
def version_table() -> VersionTable:
    """Provide the default version table (3.47 -> 4.0)."""
    return VersionTable()


@pytest.fixture
def empty_registry() -> MigrationRegistry:
    """Provide a registry with no migrations."""
    return MigrationRegistry()


# ---------------------------------------------------------------------------
# Factory fixtures for the helpers above
# ---------------------------------------------------------------------------


@pytest.fixture
def scripted_migrator() -> type[ScriptedMigrator]:
    """Provide the ScriptedMigrator class."""
    return ScriptedMigrator


@pytest.fixture
def counting_migrator() -> type[CountingMigrator]:
    """Provide the CountingMigrator class."""
    return CountingMigrator


@pytest.fixture
def record_store() -> type[InMemoryRecordStore]:
    """Provide the InMemoryRecordStore class."""
    return InMemoryRecordStore


@pytest.fixture
def make_definition() -> Any:
    """Provide the definition() builder."""
    return definition


@pytest.fixture
def make_source() -> Any:
    """Provide the build_source() builder."""
    return build_source
