"""Infrastructure adapters for the rolling upgrade planner."""

from rolling_upgrade.adapters.definition_sources import (
    FilesystemDefinitionSource,
    InMemoryDefinitionSource,
)
from rolling_upgrade.adapters.lancedb_store import LanceDBRecordStore
from rolling_upgrade.adapters.registry_file import load_registry_file

__all__ = [
    "FilesystemDefinitionSource",
    "InMemoryDefinitionSource",
    "LanceDBRecordStore",
    "load_registry_file",
]
