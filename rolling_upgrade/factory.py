"""Service factory for dependency injection and initialization.

This module wires the version table, definition source, registry and
services from a Settings instance, so the CLI and embedding applications
build the same object graph.

Usage:
    from rolling_upgrade.factory import ServiceFactory

    factory = ServiceFactory(settings)
    services = factory.create_all()
    steps = services.planner.plan(from_version, to_version)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rolling_upgrade.adapters.definition_sources import FilesystemDefinitionSource
from rolling_upgrade.adapters.lancedb_store import LanceDBRecordStore
from rolling_upgrade.adapters.registry_file import load_registry_file
from rolling_upgrade.config import Settings
from rolling_upgrade.core.oobmigration import MigrationRegistry
from rolling_upgrade.core.version import Version, VersionTable
from rolling_upgrade.migrations.record_rewrite import RecordRewriteMigrator, RecordTransform
from rolling_upgrade.services.applier import UpgradeApplier
from rolling_upgrade.services.background import OutOfBandMigrationWorker
from rolling_upgrade.services.planner import UpgradePlanner
from rolling_upgrade.services.runner import MigratorRunner
from rolling_upgrade.services.scheduler import InterruptScheduler
from rolling_upgrade.services.stitcher import MigrationGraphStitcher

if TYPE_CHECKING:
    from rolling_upgrade.ports.repositories import (
        DefinitionSourceProtocol,
        RecordStoreProtocol,
        SchemaApplierProtocol,
    )

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Container for all initialized services.

    Attributes:
        settings: Settings the services were built from.
        version_table: Major series boundaries.
        definition_source: Source of per-tag definition snapshots.
        registry: Registered out-of-band migrations.
        stitcher: Migration graph stitcher.
        scheduler: Interrupt scheduler.
        planner: Upgrade planner.
        runner: Out-of-band migrator runner.
    """

    settings: Settings
    version_table: VersionTable
    definition_source: DefinitionSourceProtocol
    registry: MigrationRegistry
    stitcher: MigrationGraphStitcher
    scheduler: InterruptScheduler
    planner: UpgradePlanner
    runner: MigratorRunner


class ServiceFactory:
    """Factory for creating and wiring services.

    Example:
        factory = ServiceFactory(settings)
        services = factory.create_all(registry=my_registry)
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def create_version_table(self) -> VersionTable:
        return VersionTable(self._settings.last_minor_in_series)

    def create_definition_source(self) -> DefinitionSourceProtocol:
        return FilesystemDefinitionSource(self._settings.definitions_path)

    def create_registry(self) -> MigrationRegistry:
        """Load the registry file if configured, else start empty."""
        if self._settings.oob_registry_path is None:
            return MigrationRegistry()
        return load_registry_file(self._settings.oob_registry_path)

    def create_runner(self) -> MigratorRunner:
        return MigratorRunner(
            max_stalled_iterations=self._settings.migrator_max_stalled_iterations,
        )

    def create_record_store(self, table_name: str) -> LanceDBRecordStore:
        """Open the LanceDB record table for one out-of-band migration.

        Raises:
            ValidationError: If the table name is not an identifier.
            StorageError: If the database cannot be opened.
        """
        store = LanceDBRecordStore(self._settings.storage_path, table_name)
        store.connect()
        return store

    def create_record_migrator(
        self,
        store: RecordStoreProtocol,
        forward: RecordTransform,
        backward: RecordTransform,
    ) -> RecordRewriteMigrator:
        """Create a RecordRewriteMigrator using the configured batch size."""
        return RecordRewriteMigrator(
            store,
            forward,
            backward,
            batch_size=self._settings.migrator_batch_size,
        )

    def create_all(
        self,
        definition_source: DefinitionSourceProtocol | None = None,
        registry: MigrationRegistry | None = None,
    ) -> ServiceContainer:
        """Create all services with proper dependency wiring.

        Args:
            definition_source: Optional source overriding the filesystem one.
            registry: Optional registry overriding the configured file.
        """
        version_table = self.create_version_table()
        source = (
            definition_source
            if definition_source is not None
            else self.create_definition_source()
        )
        registry = registry if registry is not None else self.create_registry()

        stitcher = MigrationGraphStitcher(
            source,
            max_workers=self._settings.snapshot_fetch_workers,
        )
        scheduler = InterruptScheduler()
        planner = UpgradePlanner(
            version_table,
            stitcher,
            scheduler,
            registry,
            self._settings.schema_names,
        )

        logger.debug(
            f"Services created: {len(registry)} out-of-band migrations, "
            f"schemas {self._settings.schema_names}"
        )
        return ServiceContainer(
            settings=self._settings,
            version_table=version_table,
            definition_source=source,
            registry=registry,
            stitcher=stitcher,
            scheduler=scheduler,
            planner=planner,
            runner=self.create_runner(),
        )

    def create_applier(
        self,
        services: ServiceContainer,
        schema_applier: SchemaApplierProtocol,
    ) -> UpgradeApplier:
        return UpgradeApplier(schema_applier, services.registry, services.runner)

    def create_worker(
        self,
        services: ServiceContainer,
        current_version: Version,
    ) -> OutOfBandMigrationWorker:
        return OutOfBandMigrationWorker(
            services.registry,
            services.runner,
            current_version,
            lease_dir=self._settings.lease_dir,
            interval_seconds=self._settings.worker_interval_seconds,
            lease_timeout=self._settings.lease_timeout_seconds,
        )
