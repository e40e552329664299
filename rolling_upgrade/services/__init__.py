"""Service layer for the rolling upgrade planner."""

from rolling_upgrade.services.applier import ApplyResult, UpgradeApplier, format_plan
from rolling_upgrade.services.background import (
    MigrationLease,
    OutOfBandMigrationWorker,
    WorkerTickResult,
)
from rolling_upgrade.services.planner import UpgradePlanner
from rolling_upgrade.services.runner import DriveDirection, DriveResult, MigratorRunner
from rolling_upgrade.services.scheduler import InterruptScheduler
from rolling_upgrade.services.stitcher import MigrationGraphStitcher

__all__ = [
    # Applier
    "ApplyResult",
    "UpgradeApplier",
    "format_plan",
    # Background worker
    "MigrationLease",
    "OutOfBandMigrationWorker",
    "WorkerTickResult",
    # Planning
    "InterruptScheduler",
    "MigrationGraphStitcher",
    "UpgradePlanner",
    # Runner
    "DriveDirection",
    "DriveResult",
    "MigratorRunner",
]
