"""Execute an upgrade plan step by step, and render it for humans.

For every step the applier first brings each schema to the step's leaf
migrations, then drives each listed out-of-band migration to 100% before
moving on. The applier stops at the first failure; steps already applied
stay applied, and re-running the plan resumes from durable state.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rolling_upgrade.core.errors import UnknownMigrationError
from rolling_upgrade.core.models import UpgradeStep
from rolling_upgrade.core.oobmigration import MigrationRegistry, Migrator
from rolling_upgrade.core.tracing import ExecutionContext, operation_context
from rolling_upgrade.core.version import Version
from rolling_upgrade.services.runner import MigratorRunner

if TYPE_CHECKING:
    from rolling_upgrade.ports.repositories import SchemaApplierProtocol

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Result of applying an upgrade plan.

    Attributes:
        steps_applied: Versions of the steps that completed.
        migrations_completed: Out-of-band migration IDs driven to completion.
        current_version: Version of the last completed step, if any.
    """

    steps_applied: list[Version] = field(default_factory=list)
    migrations_completed: list[int] = field(default_factory=list)
    current_version: Version | None = None


class UpgradeApplier:
    """Applies UpgradeSteps in order."""

    def __init__(
        self,
        schema_applier: SchemaApplierProtocol,
        registry: MigrationRegistry,
        runner: MigratorRunner,
    ) -> None:
        self._schema_applier = schema_applier
        self._registry = registry
        self._runner = runner

    def apply(
        self,
        steps: Sequence[UpgradeStep],
        ctx: ExecutionContext | None = None,
    ) -> ApplyResult:
        """Apply every step of a plan.

        Args:
            steps: Plan produced by UpgradePlanner.plan().
            ctx: Context whose cancellation signal stops the drive loops.

        Raises:
            UnknownMigrationError: If a step names a migration without a migrator.
            MigratorError: If an out-of-band migration fails to complete.
        """
        # Fail before touching any schema if a gating migration cannot be driven
        for step in steps:
            for migration_id in step.out_of_band_migration_ids:
                self._migrator_for(migration_id)

        result = ApplyResult()
        with operation_context("upgrade", parent=ctx) as upgrade_ctx:
            for step in steps:
                self._apply_step(step, upgrade_ctx, result)
        return result

    def _apply_step(
        self,
        step: UpgradeStep,
        ctx: ExecutionContext,
        result: ApplyResult,
    ) -> None:
        version = step.instance_version
        logger.info(f"Upgrading schemas to {version}")
        for schema_name, leaf_ids in step.leaf_migration_ids_by_schema.items():
            logger.debug(f"Upgrading schema {schema_name!r} to leaves {list(leaf_ids)}")
            self._schema_applier.apply(schema_name, leaf_ids, version)

        for migration_id in step.out_of_band_migration_ids:
            migrator = self._migrator_for(migration_id)
            logger.info(f"Waiting for out-of-band migration #{migration_id} to complete")
            with operation_context("drive-up", migration_id=migration_id, parent=ctx) as drive_ctx:
                self._runner.drive_to_completion(migrator, drive_ctx, migration_id)
            result.migrations_completed.append(migration_id)

        result.steps_applied.append(version)
        result.current_version = version

    def _migrator_for(self, migration_id: int) -> Migrator:
        migration = self._registry.get(migration_id)
        if migration.migrator is None:
            raise UnknownMigrationError(
                migration_id,
                f"Out-of-band migration {migration_id} has no migrator implementation",
            )
        return migration.migrator


def format_plan(steps: Sequence[UpgradeStep]) -> str:
    """Render a plan as indented text.

    Example output:
        PLAN:
          - Upgrade schemas to 4.0:
            - Upgrade schema "frontend" leaves=[1528395960]
          - Run/validate out of band migrations:
            - Wait for out of band migration #12 to complete
    """
    lines = ["PLAN:"]
    for step in steps:
        lines.append(f"  - Upgrade schemas to {step.instance_version}:")
        for schema_name, leaf_ids in step.leaf_migration_ids_by_schema.items():
            lines.append(f'    - Upgrade schema "{schema_name}" leaves={list(leaf_ids)}')

        if step.out_of_band_migration_ids:
            lines.append("  - Run/validate out of band migrations:")
            for migration_id in step.out_of_band_migration_ids:
                lines.append(f"    - Wait for out of band migration #{migration_id} to complete")
    return "\n".join(lines)
