"""Periodic driver for out-of-band migrations on a running instance.

Each tick walks the registry and decides, per migration, what the code at
the instance's current version expects:

    current < introduced_at, changes applied ──► drive_to_zero    (downgraded)
    introduced_at <= current < deprecated_at ──► drive_to_completion
    otherwise                               ──► skip

A drive only starts while holding the migration's execution lease, a
FileLock under `lease_dir`, so two workers (threads or processes) never
drive the same migration at once. A lease held elsewhere skips that
migration for this tick. Batch failures are logged and retried on the next
tick.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from filelock import FileLock
from filelock import Timeout as FileLockTimeout

from rolling_upgrade.core.errors import (
    LeaseError,
    MigrationCancelledError,
    RollingUpgradeError,
)
from rolling_upgrade.core.oobmigration import (
    MigrationRegistry,
    Migrator,
    OutOfBandMigration,
)
from rolling_upgrade.core.tracing import ExecutionContext, operation_context
from rolling_upgrade.core.version import Version
from rolling_upgrade.services.runner import MigratorRunner

logger = logging.getLogger(__name__)


@dataclass
class WorkerTickResult:
    """What a single tick did.

    Attributes:
        completed: Migrations driven to 100%.
        reverted: Migrations driven back to 0%.
        skipped_leased: Migrations whose lease was held by another driver.
        failed: Migration ID -> error message for drives that raised.
    """

    completed: list[int] = field(default_factory=list)
    reverted: list[int] = field(default_factory=list)
    skipped_leased: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)


class MigrationLease:
    """Execution lease for one out-of-band migration, backed by a FileLock.

    Example:
        lease = MigrationLease(Path("/var/run/oob"), migration_id=12)
        with lease:
            runner.drive_to_completion(migrator, ctx)
    """

    def __init__(self, lease_dir: Path, migration_id: int, timeout: float = 0.0) -> None:
        self.lock_path = Path(lease_dir) / f"oobmigration-{migration_id}.lock"
        self.timeout = timeout
        self._lock = FileLock(str(self.lock_path), timeout=timeout)

    def acquire(self) -> None:
        """Acquire the lease.

        Raises:
            LeaseError: If another driver holds the lease past the timeout.
        """
        try:
            self._lock.acquire(timeout=self.timeout)
        except FileLockTimeout:
            raise LeaseError(
                lock_path=str(self.lock_path),
                timeout=self.timeout,
            ) from None

    def release(self) -> None:
        self._lock.release()

    def __enter__(self) -> MigrationLease:
        self.acquire()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.release()


class OutOfBandMigrationWorker:
    """Background worker that keeps out-of-band migrations in step with the instance."""

    def __init__(
        self,
        registry: MigrationRegistry,
        runner: MigratorRunner,
        current_version: Version,
        lease_dir: Path,
        interval_seconds: float = 60.0,
        lease_timeout: float = 0.0,
    ) -> None:
        """Initialize the worker.

        Args:
            registry: Migrations to keep driving.
            runner: Runner executing the drive loops.
            current_version: Version of the code this instance runs.
            lease_dir: Directory holding per-migration lease files.
            interval_seconds: Pause between ticks of the background thread.
            lease_timeout: Seconds to wait for a held lease before skipping.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._registry = registry
        self._runner = runner
        self._current_version = current_version
        self._lease_dir = Path(lease_dir)
        self._interval = interval_seconds
        self._lease_timeout = lease_timeout

        self._shutdown_event = threading.Event()
        self._worker_thread: threading.Thread | None = None
        self._ticks = 0

    @property
    def ticks(self) -> int:
        return self._ticks

    def run_once(self, ctx: ExecutionContext | None = None) -> WorkerTickResult:
        """Run a single tick over every registered migration."""
        self._lease_dir.mkdir(parents=True, exist_ok=True)
        result = WorkerTickResult()

        with operation_context("oob-tick", parent=ctx) as tick_ctx:
            for migration in self._registry:
                if tick_ctx.cancelled:
                    break
                if migration.migrator is None:
                    continue
                self._drive(migration, migration.migrator, tick_ctx, result)

        self._ticks += 1
        return result

    def _drive(
        self,
        migration: OutOfBandMigration,
        migrator: Migrator,
        ctx: ExecutionContext,
        result: WorkerTickResult,
    ) -> None:
        version = self._current_version
        downgraded = version < migration.introduced_at
        if not downgraded and not migration.is_supported_at(version):
            return

        lease = MigrationLease(self._lease_dir, migration.id, timeout=self._lease_timeout)
        try:
            with lease:
                direction = "drive-down" if downgraded else "drive-up"
                with operation_context(direction, migration_id=migration.id, parent=ctx) as drive_ctx:
                    if downgraded:
                        if migrator.has_applied_changes(drive_ctx):
                            self._runner.drive_to_zero(migrator, drive_ctx, migration.id)
                            result.reverted.append(migration.id)
                    else:
                        self._runner.drive_to_completion(migrator, drive_ctx, migration.id)
                        result.completed.append(migration.id)
        except LeaseError:
            logger.debug(f"Lease for migration #{migration.id} held elsewhere, skipping")
            result.skipped_leased.append(migration.id)
        except MigrationCancelledError:
            logger.debug(f"Drive of migration #{migration.id} cancelled")
        except RollingUpgradeError as e:
            logger.warning(f"Out-of-band migration #{migration.id} failed, will retry: {e}")
            result.failed[migration.id] = str(e)
        except Exception as e:
            logger.error(
                f"Unexpected error driving out-of-band migration #{migration.id}: {e}",
                exc_info=True,
            )
            result.failed[migration.id] = str(e)

    def start(self) -> None:
        """Start the background thread.

        Safe to call multiple times - will only start if not already running.
        """
        if self._worker_thread is not None and self._worker_thread.is_alive():
            logger.debug("Out-of-band migration worker already running")
            return

        self._shutdown_event.clear()
        self._worker_thread = threading.Thread(
            target=self._background_worker,
            name="oobmigration-worker",
            daemon=True,
        )
        self._worker_thread.start()
        logger.info("Out-of-band migration worker started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the background thread, cancelling any drive in progress between batches."""
        if self._worker_thread is None or not self._worker_thread.is_alive():
            return

        logger.info("Stopping out-of-band migration worker...")
        self._shutdown_event.set()
        self._worker_thread.join(timeout=timeout)

        if self._worker_thread.is_alive():
            logger.warning("Out-of-band migration worker did not stop within timeout")
        else:
            logger.info(f"Out-of-band migration worker stopped after {self._ticks} ticks")

    def _background_worker(self) -> None:
        ctx = ExecutionContext.create("oob-worker", cancel_event=self._shutdown_event)
        while not self._shutdown_event.is_set():
            try:
                result = self.run_once(ctx)
                if result.failed:
                    logger.info(f"Tick finished with {len(result.failed)} failed migrations")
            except Exception as e:
                logger.error(f"Out-of-band migration tick failed: {e}", exc_info=True)
            self._shutdown_event.wait(self._interval)
