"""Decide where an upgrade has to stop for out-of-band migrations.

A migration deprecated at version D means code at D can no longer read data
the migration has not rewritten yet. If an upgrade crosses D, it has to
pause at D until the migration is complete. Migrations deprecated at the
same version share a single stop. A deprecation version that is not a
release of the range (past the end of its major series) stops at the first
release after it.
"""

from __future__ import annotations

import logging
from bisect import bisect_left
from collections import defaultdict
from collections.abc import Iterable, Sequence

from rolling_upgrade.core.models import MigrationInterrupt
from rolling_upgrade.core.oobmigration import OutOfBandMigration
from rolling_upgrade.core.version import Version

logger = logging.getLogger(__name__)


class InterruptScheduler:
    """Computes migration interrupts for an upgrade range."""

    def schedule_interrupts(
        self,
        version_range: Sequence[Version],
        migrations: Iterable[OutOfBandMigration],
    ) -> list[MigrationInterrupt]:
        """Group the deprecation boundaries crossed by an upgrade.

        Args:
            version_range: Inclusive, ascending upgrade range.
            migrations: Registered out-of-band migrations.

        Returns:
            One interrupt per distinct deprecation version inside
            (from, to], ascending by version, migration IDs ascending.
        """
        if len(version_range) < 2:
            return []
        from_version, to_version = version_range[0], version_range[-1]

        ids_by_version: dict[Version, set[int]] = defaultdict(set)
        for migration in migrations:
            deprecated_at = migration.deprecated_at
            if deprecated_at is None:
                continue
            if from_version < deprecated_at <= to_version:
                stop = version_range[bisect_left(version_range, deprecated_at)]
                ids_by_version[stop].add(migration.id)

        interrupts = [
            MigrationInterrupt(version=version, migration_ids=tuple(sorted(ids)))
            for version, ids in sorted(ids_by_version.items())
        ]
        for interrupt in interrupts:
            logger.debug(
                f"Interrupt at {interrupt.version}: out-of-band migrations "
                f"{list(interrupt.migration_ids)}"
            )
        return interrupts
