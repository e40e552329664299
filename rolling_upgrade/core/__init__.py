"""Core components for the rolling upgrade planner."""

from rolling_upgrade.core.errors import (
    ConfigurationError,
    CycleError,
    DefinitionFetchError,
    HistoryIntegrityError,
    InconsistentHistoryError,
    InvalidProgressError,
    InvalidVersionFormatError,
    InvertedRangeError,
    LeaseError,
    MigrationCancelledError,
    MigratorBatchError,
    MigratorError,
    MigratorProgressError,
    MissingSeriesBoundaryError,
    RollingUpgradeError,
    SnapshotNotFoundError,
    StalledMigrationError,
    StorageError,
    UnknownMigrationError,
    ValidationError,
    VersionRangeError,
)
from rolling_upgrade.core.models import (
    LeafSet,
    MigrationDefinition,
    MigrationInterrupt,
    SchemaGraphSnapshot,
    StitchedGraph,
    UpgradeStep,
)
from rolling_upgrade.core.oobmigration import (
    MigrationRegistry,
    Migrator,
    OutOfBandMigration,
)
from rolling_upgrade.core.tracing import ExecutionContext, operation_context
from rolling_upgrade.core.version import (
    Version,
    VersionOrder,
    VersionTable,
    compare_versions,
    try_parse_version,
)

__all__ = [
    # Errors - Base
    "RollingUpgradeError",
    "ValidationError",
    "ConfigurationError",
    "StorageError",
    # Errors - Versions
    "InvalidVersionFormatError",
    "VersionRangeError",
    "InvertedRangeError",
    "MissingSeriesBoundaryError",
    # Errors - History
    "DefinitionFetchError",
    "SnapshotNotFoundError",
    "HistoryIntegrityError",
    "InconsistentHistoryError",
    "CycleError",
    # Errors - Out-of-band migrations
    "UnknownMigrationError",
    "MigratorError",
    "MigratorBatchError",
    "MigratorProgressError",
    "InvalidProgressError",
    "StalledMigrationError",
    "MigrationCancelledError",
    "LeaseError",
    # Models
    "MigrationDefinition",
    "SchemaGraphSnapshot",
    "LeafSet",
    "StitchedGraph",
    "MigrationInterrupt",
    "UpgradeStep",
    # Out-of-band migrations
    "Migrator",
    "OutOfBandMigration",
    "MigrationRegistry",
    # Versions
    "Version",
    "VersionOrder",
    "VersionTable",
    "compare_versions",
    "try_parse_version",
    # Tracing
    "ExecutionContext",
    "operation_context",
]
