"""Rolling Upgrade - plan and drive multi-version database upgrades."""

__version__ = "0.1.0"

# Re-export core components for convenience
from rolling_upgrade.config import Settings, get_settings
from rolling_upgrade.core import (
    CycleError,
    DefinitionFetchError,
    InconsistentHistoryError,
    InvalidVersionFormatError,
    InvertedRangeError,
    MigrationDefinition,
    MigrationRegistry,
    Migrator,
    MigratorBatchError,
    OutOfBandMigration,
    RollingUpgradeError,
    StalledMigrationError,
    UpgradeStep,
    Version,
    VersionTable,
)
from rolling_upgrade.services import (
    InterruptScheduler,
    MigrationGraphStitcher,
    MigratorRunner,
    UpgradePlanner,
)

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    # Errors
    "RollingUpgradeError",
    "InvalidVersionFormatError",
    "InvertedRangeError",
    "DefinitionFetchError",
    "InconsistentHistoryError",
    "CycleError",
    "MigratorBatchError",
    "StalledMigrationError",
    # Models
    "Version",
    "VersionTable",
    "MigrationDefinition",
    "UpgradeStep",
    "Migrator",
    "OutOfBandMigration",
    "MigrationRegistry",
    # Services
    "MigrationGraphStitcher",
    "InterruptScheduler",
    "UpgradePlanner",
    "MigratorRunner",
]
