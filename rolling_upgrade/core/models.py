"""Data models for the rolling upgrade planner."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from rolling_upgrade.core.version import Version


class MigrationDefinition(BaseModel):
    """A single schema migration as authored for one schema.

    Definitions are immutable once published; history only grows.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, description="Unique identifier, assigned at authoring time")
    schema_name: str = Field(..., min_length=1)
    name: str = Field(default="")
    parents: tuple[int, ...] = Field(
        default=(), description="Definitions that must be applied first"
    )
    up_query: str = Field(default="", description="Opaque forward payload")
    down_query: str = Field(default="", description="Opaque backward payload")

    @field_validator("parents", mode="after")
    @classmethod
    def _sort_parents(cls, parents: tuple[int, ...]) -> tuple[int, ...]:
        return tuple(sorted(set(parents)))


class SchemaGraphSnapshot(BaseModel):
    """The full definition graph of a schema as recorded at one version tag."""

    model_config = ConfigDict(frozen=True)

    schema_name: str
    tag: str
    definitions: tuple[MigrationDefinition, ...] = ()

    @property
    def ids(self) -> frozenset[int]:
        return frozenset(definition.id for definition in self.definitions)

    def by_id(self) -> dict[int, MigrationDefinition]:
        return {definition.id: definition for definition in self.definitions}

    def edges(self) -> frozenset[tuple[int, int]]:
        """All (parent, child) pairs in the snapshot."""
        return frozenset(
            (parent, definition.id)
            for definition in self.definitions
            for parent in definition.parents
        )


class LeafSet(BaseModel):
    """Frontier migrations of a schema at one version tag, ascending by ID."""

    model_config = ConfigDict(frozen=True)

    schema_name: str
    tag: str
    migration_ids: tuple[int, ...] = ()


class StitchedGraph(BaseModel):
    """Union of a schema's definitions across tags, with per-tag leaves."""

    model_config = ConfigDict(frozen=True)

    schema_name: str
    definitions: dict[int, MigrationDefinition] = Field(default_factory=dict)
    leaf_ids_by_tag: dict[str, tuple[int, ...]] = Field(default_factory=dict)

    def leaf_set(self, tag: str) -> LeafSet:
        return LeafSet(
            schema_name=self.schema_name,
            tag=tag,
            migration_ids=self.leaf_ids_by_tag[tag],
        )


class MigrationInterrupt(BaseModel):
    """A version at which named out-of-band migrations must reach 100%."""

    model_config = ConfigDict(frozen=True)

    version: Version
    migration_ids: tuple[int, ...]

    @field_serializer("version")
    def _serialize_version(self, version: Version) -> str:
        return str(version)


class UpgradeStep(BaseModel):
    """One unit of an upgrade plan.

    The schemas are brought to the listed leaf migrations for
    `instance_version`, then every listed out-of-band migration has to
    complete before the next step may start.
    """

    model_config = ConfigDict(frozen=True)

    instance_version: Version
    leaf_migration_ids_by_schema: dict[str, tuple[int, ...]] = Field(default_factory=dict)
    out_of_band_migration_ids: tuple[int, ...] = ()

    @field_validator("leaf_migration_ids_by_schema", mode="after")
    @classmethod
    def _sort_schemas(cls, leaves: dict[str, tuple[int, ...]]) -> dict[str, tuple[int, ...]]:
        return {name: tuple(leaves[name]) for name in sorted(leaves)}

    @field_serializer("instance_version")
    def _serialize_version(self, version: Version) -> str:
        return str(version)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
