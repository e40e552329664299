"""Custom exceptions for the rolling upgrade planner."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rolling_upgrade.core.version import Version


def sanitize_path_for_error(path: str | Path) -> str:
    """Extract only the filename from a path for safe error messages.

    Args:
        path: Full path or filename.

    Returns:
        Just the filename portion.
    """
    if isinstance(path, Path):
        return path.name
    return Path(path).name


class RollingUpgradeError(Exception):
    """Base exception for all rolling upgrade errors."""

    pass


class ValidationError(RollingUpgradeError):
    """Raised when input validation fails."""

    pass


class ConfigurationError(RollingUpgradeError):
    """Raised when configuration is invalid."""

    pass


class StorageError(RollingUpgradeError):
    """Raised when a backing store operation fails."""

    pass


# =============================================================================
# Version Errors
# =============================================================================


class InvalidVersionFormatError(ValidationError):
    """Raised when a version string cannot be parsed."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(
            f"Invalid version format: {value!r} (expected 'major.minor' or 'vMAJOR.MINOR.PATCH')"
        )


class VersionRangeError(RollingUpgradeError):
    """Raised when an upgrade range cannot be constructed."""

    pass


class InvertedRangeError(VersionRangeError):
    """Raised when the upgrade source version is after the target version."""

    def __init__(self, from_version: Version, to_version: Version) -> None:
        self.from_version = from_version
        self.to_version = to_version
        super().__init__(f"Invalid range (from={from_version} > to={to_version})")


class MissingSeriesBoundaryError(VersionRangeError):
    """Raised when a range crosses a major version with no known last minor."""

    def __init__(self, major: int, message: str | None = None) -> None:
        self.major = major
        super().__init__(
            message or f"No last minor version registered for major version {major}"
        )


# =============================================================================
# Definition Source Errors
# =============================================================================


class DefinitionFetchError(RollingUpgradeError):
    """Raised when migration definitions cannot be read from their source.

    Usually transient; callers may retry planning.
    """

    def __init__(self, schema_name: str, tag: str, message: str) -> None:
        self.schema_name = schema_name
        self.tag = tag
        super().__init__(f"Failed to fetch {schema_name!r} definitions at {tag}: {message}")


class SnapshotNotFoundError(DefinitionFetchError):
    """Raised when no snapshot exists for a schema at a version tag."""

    def __init__(self, schema_name: str, tag: str) -> None:
        super().__init__(schema_name, tag, "snapshot not found")


# =============================================================================
# History Integrity Errors
# =============================================================================


class HistoryIntegrityError(RollingUpgradeError):
    """Raised when authored migration history is corrupt.

    Never retried: the history has to be fixed at its source.
    """

    pass


class InconsistentHistoryError(HistoryIntegrityError):
    """Raised when snapshots disagree or a snapshot is internally inconsistent."""

    def __init__(self, schema_name: str, tag: str, message: str) -> None:
        self.schema_name = schema_name
        self.tag = tag
        super().__init__(f"Inconsistent {schema_name!r} migration history at {tag}: {message}")


class CycleError(HistoryIntegrityError):
    """Raised when parent edges of a snapshot form a cycle."""

    def __init__(self, schema_name: str, tag: str, cycle: Sequence[int]) -> None:
        self.schema_name = schema_name
        self.tag = tag
        self.cycle = list(cycle)
        path = " -> ".join(str(migration_id) for migration_id in self.cycle)
        super().__init__(f"Cycle in {schema_name!r} migration history at {tag}: {path}")


# =============================================================================
# Out-of-Band Migration Errors
# =============================================================================


class UnknownMigrationError(RollingUpgradeError):
    """Raised when an out-of-band migration ID is not registered."""

    def __init__(self, migration_id: int, message: str | None = None) -> None:
        self.migration_id = migration_id
        super().__init__(message or f"Out-of-band migration not registered: {migration_id}")


class MigratorError(RollingUpgradeError):
    """Base class for failures while driving an out-of-band migrator."""

    def __init__(self, message: str, migration_id: int | None = None) -> None:
        self.migration_id = migration_id
        prefix = f"Migration #{migration_id}: " if migration_id is not None else ""
        super().__init__(prefix + message)


class MigratorBatchError(MigratorError):
    """Raised when a single up/down batch fails.

    The runner does not retry; the caller's scheduler retries on its own cadence.
    """

    def __init__(self, direction: str, migration_id: int | None, cause: BaseException) -> None:
        self.direction = direction
        super().__init__(f"{direction} batch failed: {cause}", migration_id)


class MigratorProgressError(MigratorError):
    """Raised when a migrator cannot report its progress."""

    pass


class InvalidProgressError(MigratorError):
    """Raised when a migrator reports progress outside [0, 1]."""

    def __init__(self, progress: float, migration_id: int | None = None) -> None:
        self.progress = progress
        super().__init__(f"progress {progress!r} is outside [0, 1]", migration_id)


class StalledMigrationError(MigratorError):
    """Raised when progress stops moving across consecutive batches."""

    def __init__(
        self,
        progress: float,
        iterations: int,
        migration_id: int | None = None,
    ) -> None:
        self.progress = progress
        self.iterations = iterations
        super().__init__(
            f"progress stuck at {progress:.4f} for {iterations} consecutive batches",
            migration_id,
        )


class MigrationCancelledError(MigratorError):
    """Raised when a drive loop observes cancellation between batches."""

    pass


# =============================================================================
# Execution Lease Error
# =============================================================================


class LeaseError(RollingUpgradeError):
    """Raised when an execution lease for a migration cannot be acquired."""

    def __init__(self, lock_path: str, timeout: float, message: str | None = None) -> None:
        self.lock_path = lock_path
        self.timeout = timeout
        safe_name = sanitize_path_for_error(lock_path)
        self.message = message or f"Failed to acquire execution lease {safe_name} after {timeout}s"
        super().__init__(self.message)
