"""Out-of-band migration contract and registry.

An out-of-band migration rewrites existing data in the background, one
bounded batch at a time, while the instance keeps serving traffic. Each one
is valid for an interval of instance versions: it is introduced at some
release, and from its deprecation release onward the code no longer reads
the pre-migration data shape. An upgrade therefore may not cross the
deprecation release until the migration reports 100% progress.

Usage:
    from rolling_upgrade.core.oobmigration import (
        MigrationRegistry,
        Migrator,
        OutOfBandMigration,
    )

    class BackfillOwners(Migrator):
        def progress(self, ctx): ...
        def up(self, ctx): ...
        def down(self, ctx): ...

    registry = MigrationRegistry()
    registry.register(OutOfBandMigration(
        id=12,
        description="Backfill repository owners",
        introduced_at=Version(3, 40),
        deprecated_at=Version(4, 0),
        migrator=BackfillOwners(),
    ))
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rolling_upgrade.core.errors import UnknownMigrationError, ValidationError
from rolling_upgrade.core.version import Version

if TYPE_CHECKING:
    from rolling_upgrade.core.tracing import ExecutionContext

logger = logging.getLogger(__name__)


# =============================================================================
# Migrator Base Class
# =============================================================================


class Migrator(ABC):
    """Abstract base class for out-of-band data migrators.

    Each migrator should:
    1. Report progress from durable state, never from an in-memory counter
    2. Apply one bounded batch per up()/down() call, atomically
    3. Be safe to re-invoke on rows it has not finished yet

    Example:
        class ChangesetSpecMigrator(Migrator):
            def progress(self, ctx):
                return self._store.migrated_fraction()

            def up(self, ctx):
                with self._store.transaction() as tx:
                    for spec in tx.unmigrated(limit=100):
                        tx.migrate(spec)

            def down(self, ctx):
                self._store.reset_migrated(limit=100)
    """

    @abstractmethod
    def progress(self, ctx: ExecutionContext) -> float:
        """Estimate completion in [0, 1] without side effects."""
        ...

    @abstractmethod
    def up(self, ctx: ExecutionContext) -> None:
        """Apply one bounded batch of forward migration.

        Raises:
            Exception: Any failure; the batch must have been rolled back.
        """
        ...

    @abstractmethod
    def down(self, ctx: ExecutionContext) -> None:
        """Apply one bounded batch of reversal, symmetric to up()."""
        ...

    def has_applied_changes(self, ctx: ExecutionContext) -> bool:
        """Whether any forward change exists that down() could revert.

        Defaults to progress above zero. Migrators whose progress is 1.0
        with nothing applied (an empty store) must override this.
        """
        return self.progress(ctx) > 0.0


# =============================================================================
# Registered Migrations
# =============================================================================


@dataclass(frozen=True)
class OutOfBandMigration:
    """A registered out-of-band migration and its validity interval.

    Attributes:
        id: Unique migration identifier.
        description: Human-readable summary.
        introduced_at: First version whose code runs the migration.
        deprecated_at: First version whose code no longer reads the
            pre-migration data shape, or None if that release is not planned.
        migrator: Implementation driving the migration. Optional so that
            planning can run from interval metadata alone.
    """

    id: int
    introduced_at: Version
    deprecated_at: Version | None = None
    description: str = ""
    migrator: Migrator | None = None

    def __post_init__(self) -> None:
        if self.id < 0:
            raise ValidationError(f"Out-of-band migration ID must be non-negative: {self.id}")
        if self.deprecated_at is not None and self.deprecated_at <= self.introduced_at:
            raise ValidationError(
                f"Out-of-band migration {self.id} is deprecated at {self.deprecated_at}, "
                f"which is not after its introduction at {self.introduced_at}"
            )

    def is_supported_at(self, version: Version) -> bool:
        """Whether code at `version` still runs this migration."""
        if version < self.introduced_at:
            return False
        return self.deprecated_at is None or version < self.deprecated_at


class MigrationRegistry:
    """Explicit set of known out-of-band migrations, keyed by ID.

    Registries are plain values: tests and alternate upgrade policies build
    their own instead of sharing process-wide state.
    """

    def __init__(self, migrations: Iterable[OutOfBandMigration] = ()) -> None:
        self._migrations: dict[int, OutOfBandMigration] = {}
        for migration in migrations:
            self.register(migration)

    def register(self, migration: OutOfBandMigration) -> None:
        """Register a migration.

        Raises:
            ValueError: If a migration with the same ID already exists.
        """
        if migration.id in self._migrations:
            raise ValueError(f"Out-of-band migration {migration.id} already registered")
        self._migrations[migration.id] = migration
        logger.debug(
            f"Registered out-of-band migration {migration.id} "
            f"[{migration.introduced_at}, {migration.deprecated_at or '-'})"
        )

    def get(self, migration_id: int) -> OutOfBandMigration:
        """Look up a migration by ID.

        Raises:
            UnknownMigrationError: If the ID is not registered.
        """
        try:
            return self._migrations[migration_id]
        except KeyError:
            raise UnknownMigrationError(migration_id) from None

    def all(self) -> list[OutOfBandMigration]:
        """All registered migrations, ascending by ID."""
        return [self._migrations[key] for key in sorted(self._migrations)]

    def __contains__(self, migration_id: object) -> bool:
        return migration_id in self._migrations

    def __iter__(self) -> Iterator[OutOfBandMigration]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._migrations)
