"""Drive out-of-band migrators to completion or back to zero.

A drive loop alternates one migrator batch with one progress read until the
target progress is reached. It never retries a failed batch and never
spins: every iteration must move progress toward the target, and a run of
iterations that do not is reported as a stalled migration.

The runner does not provide mutual exclusion. Whoever schedules a drive
must hold the migration's execution lease for its duration (see
services.background).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from rolling_upgrade.core.errors import (
    InvalidProgressError,
    MigrationCancelledError,
    MigratorBatchError,
    MigratorProgressError,
    StalledMigrationError,
)

if TYPE_CHECKING:
    from rolling_upgrade.core.oobmigration import Migrator
    from rolling_upgrade.core.tracing import ExecutionContext

logger = logging.getLogger(__name__)

DEFAULT_MAX_STALLED_ITERATIONS = 2


class DriveDirection(Enum):
    """Direction of a drive loop."""

    UP = "up"
    DOWN = "down"


@dataclass
class DriveResult:
    """Outcome of a completed drive loop.

    Attributes:
        direction: Whether the migration was applied or reverted.
        batches: Number of up()/down() calls made.
        initial_progress: Progress before the first batch.
        final_progress: Progress when the loop finished.
    """

    direction: DriveDirection
    batches: int
    initial_progress: float
    final_progress: float


class MigratorRunner:
    """Runs the drive loops for a single migrator at a time."""

    def __init__(self, max_stalled_iterations: int = DEFAULT_MAX_STALLED_ITERATIONS) -> None:
        """Initialize the runner.

        Args:
            max_stalled_iterations: Consecutive batches without progress that
                are tolerated before raising StalledMigrationError.
        """
        if max_stalled_iterations < 1:
            raise ValueError("max_stalled_iterations must be at least 1")
        self._max_stalled_iterations = max_stalled_iterations

    def drive_to_completion(
        self,
        migrator: Migrator,
        ctx: ExecutionContext,
        migration_id: int | None = None,
    ) -> DriveResult:
        """Call up() until progress reaches 1.0.

        Raises:
            MigratorBatchError: If an up() batch fails.
            MigratorProgressError: If progress cannot be read.
            InvalidProgressError: If progress is outside [0, 1].
            StalledMigrationError: If progress stops increasing.
            MigrationCancelledError: If ctx is cancelled between batches.
        """
        return self._drive(migrator, ctx, DriveDirection.UP, migration_id)

    def drive_to_zero(
        self,
        migrator: Migrator,
        ctx: ExecutionContext,
        migration_id: int | None = None,
    ) -> DriveResult:
        """Call down() until progress reaches 0.0. Symmetric to drive_to_completion."""
        return self._drive(migrator, ctx, DriveDirection.DOWN, migration_id)

    def _drive(
        self,
        migrator: Migrator,
        ctx: ExecutionContext,
        direction: DriveDirection,
        migration_id: int | None,
    ) -> DriveResult:
        if migration_id is None:
            migration_id = ctx.migration_id

        initial = progress = self._read_progress(migrator, ctx, migration_id)
        batches = 0
        stalled = 0

        while not _reached(progress, direction):
            if ctx.cancelled:
                raise MigrationCancelledError(
                    f"drive {direction.value} cancelled at progress {progress:.4f}",
                    migration_id,
                )

            self._run_batch(migrator, ctx, direction, migration_id)
            batches += 1

            previous, progress = progress, self._read_progress(migrator, ctx, migration_id)
            if _advanced(previous, progress, direction):
                stalled = 0
            else:
                stalled += 1
                logger.debug(
                    f"Migration #{migration_id} did not advance after batch {batches} "
                    f"({stalled}/{self._max_stalled_iterations})"
                )
                if stalled >= self._max_stalled_iterations:
                    raise StalledMigrationError(progress, stalled, migration_id)

        logger.info(
            f"Migration #{migration_id} driven {direction.value}: "
            f"{initial:.2%} -> {progress:.2%} in {batches} batches"
        )
        return DriveResult(
            direction=direction,
            batches=batches,
            initial_progress=initial,
            final_progress=progress,
        )

    def _run_batch(
        self,
        migrator: Migrator,
        ctx: ExecutionContext,
        direction: DriveDirection,
        migration_id: int | None,
    ) -> None:
        try:
            if direction is DriveDirection.UP:
                migrator.up(ctx)
            else:
                migrator.down(ctx)
        except MigrationCancelledError:
            raise
        except Exception as e:
            raise MigratorBatchError(direction.value, migration_id, e) from e

    def _read_progress(
        self,
        migrator: Migrator,
        ctx: ExecutionContext,
        migration_id: int | None,
    ) -> float:
        try:
            progress = float(migrator.progress(ctx))
        except Exception as e:
            raise MigratorProgressError(f"progress unavailable: {e}", migration_id) from e

        if math.isnan(progress) or progress < 0.0 or progress > 1.0:
            raise InvalidProgressError(progress, migration_id)
        return progress


def _reached(progress: float, direction: DriveDirection) -> bool:
    if direction is DriveDirection.UP:
        return progress >= 1.0
    return progress <= 0.0


def _advanced(previous: float, current: float, direction: DriveDirection) -> bool:
    if direction is DriveDirection.UP:
        return current > previous
    return current < previous
