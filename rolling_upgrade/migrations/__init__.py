"""Out-of-band data migrations for rolling-upgrade.

This package contains concrete Migrator implementations. Each one drives a
single resumable data rewrite through up()/down() batches and reports its
progress from durable state.

Example:
    from rolling_upgrade.core.oobmigration import OutOfBandMigration
    from rolling_upgrade.migrations import RecordRewriteMigrator

    migration = OutOfBandMigration(
        id=12,
        introduced_at=Version(3, 40),
        deprecated_at=Version(4, 0),
        migrator=RecordRewriteMigrator(store, forward=upgrade, backward=downgrade),
    )
"""

from rolling_upgrade.core.oobmigration import (
    MigrationRegistry,
    Migrator,
    OutOfBandMigration,
)
from rolling_upgrade.migrations.record_rewrite import (
    DEFAULT_BATCH_SIZE,
    RecordRewriteMigrator,
)

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "MigrationRegistry",
    "Migrator",
    "OutOfBandMigration",
    "RecordRewriteMigrator",
]
