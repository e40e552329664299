"""Port interfaces for the rolling upgrade planner."""

from rolling_upgrade.ports.repositories import (
    DefinitionSourceProtocol,
    RecordStoreProtocol,
    SchemaApplierProtocol,
)

__all__ = [
    "DefinitionSourceProtocol",
    "RecordStoreProtocol",
    "SchemaApplierProtocol",
]
