"""Assemble an ordered upgrade plan from versions, leaves and interrupts.

Usage:
    from rolling_upgrade.services.planner import UpgradePlanner

    planner = UpgradePlanner(version_table, stitcher, scheduler, registry, ["frontend"])
    steps = planner.plan(Version(3, 45), Version(4, 1))
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from rolling_upgrade.core.models import LeafSet, UpgradeStep
from rolling_upgrade.core.oobmigration import MigrationRegistry
from rolling_upgrade.core.tracing import TimingContext, operation_context
from rolling_upgrade.core.version import Version, VersionTable
from rolling_upgrade.services.scheduler import InterruptScheduler
from rolling_upgrade.services.stitcher import MigrationGraphStitcher

logger = logging.getLogger(__name__)


class UpgradePlanner:
    """Produces the ordered steps that take an instance from one version to another.

    Planning only reads: it fetches immutable snapshots and the registry's
    intervals and holds no state between calls, so concurrent and repeated
    calls are safe and yield identical plans for identical inputs.
    """

    def __init__(
        self,
        version_table: VersionTable,
        stitcher: MigrationGraphStitcher,
        scheduler: InterruptScheduler,
        registry: MigrationRegistry,
        schema_names: Sequence[str],
    ) -> None:
        """Initialize the planner.

        Args:
            version_table: Major series boundaries used to build the range.
            stitcher: Resolves per-tag leaf sets for each schema.
            scheduler: Computes out-of-band migration interrupts.
            registry: Registered out-of-band migrations.
            schema_names: Schemas whose leaves each step lists.
        """
        self._version_table = version_table
        self._stitcher = stitcher
        self._scheduler = scheduler
        self._registry = registry
        self._schema_names = sorted(set(schema_names))

    def plan(self, from_version: Version, to_version: Version) -> list[UpgradeStep]:
        """Plan the upgrade from `from_version` to `to_version`.

        Returns:
            One step per interrupt, then a final step at `to_version` with no
            out-of-band migrations. `from_version == to_version` yields that
            final step alone.

        Raises:
            InvertedRangeError: If from_version is after to_version.
            MissingSeriesBoundaryError: If the range cannot be built.
            DefinitionFetchError: If a snapshot cannot be read.
            HistoryIntegrityError: If recorded history is corrupt.
        """
        version_range = self._version_table.make_range(from_version, to_version)
        return self.plan_range(version_range)

    def plan_range(self, version_range: Sequence[Version]) -> list[UpgradeStep]:
        """Plan an upgrade across an already computed version range."""
        if not version_range:
            return []
        from_version, to_version = version_range[0], version_range[-1]

        with operation_context("plan"):
            timing = TimingContext()
            logger.info(
                f"Planning upgrade {from_version} -> {to_version} "
                f"({len(version_range)} releases, {len(self._schema_names)} schemas)"
            )

            tags = [version.git_tag for version in version_range]
            with timing.measure("stitch"):
                leaf_sets_by_schema = {
                    schema_name: self._stitcher.resolve_leaf_sets(schema_name, tags)
                    for schema_name in self._schema_names
                }

            with timing.measure("schedule"):
                interrupts = self._scheduler.schedule_interrupts(
                    version_range, self._registry.all()
                )

            steps = [
                _make_step(interrupt.version, leaf_sets_by_schema, interrupt.migration_ids)
                for interrupt in interrupts
            ]
            steps.append(_make_step(to_version, leaf_sets_by_schema, ()))

            summary = timing.summary()
            logger.info(
                f"Planned {len(steps)} steps with {len(interrupts)} interrupts "
                f"in {summary['total_ms']:.1f}ms"
            )
            return steps


def _make_step(
    version: Version,
    leaf_sets_by_schema: dict[str, dict[str, LeafSet]],
    migration_ids: tuple[int, ...],
) -> UpgradeStep:
    tag = version.git_tag
    return UpgradeStep(
        instance_version=version,
        leaf_migration_ids_by_schema={
            schema_name: leaf_sets[tag].migration_ids
            for schema_name, leaf_sets in leaf_sets_by_schema.items()
        },
        out_of_band_migration_ids=migration_ids,
    )
