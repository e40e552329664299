"""Unit tests for the out-of-band migration background worker.

Tests cover:
- Per-migration drive decisions at the instance's current version
- Execution lease handling
- Failure isolation between migrations
- Background thread lifecycle
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from filelock import Timeout as FileLockTimeout

from rolling_upgrade.core.errors import LeaseError
from rolling_upgrade.core.oobmigration import MigrationRegistry, OutOfBandMigration
from rolling_upgrade.core.tracing import ExecutionContext
from rolling_upgrade.core.version import Version
from rolling_upgrade.migrations.record_rewrite import RecordRewriteMigrator
from rolling_upgrade.services.background import (
    MigrationLease,
    OutOfBandMigrationWorker,
)
from rolling_upgrade.services.runner import MigratorRunner


def make_worker(
    registry: MigrationRegistry,
    lease_dir: Path,
    current: Version = Version(2, 0),
    interval_seconds: float = 60.0,
) -> OutOfBandMigrationWorker:
    return OutOfBandMigrationWorker(
        registry,
        MigratorRunner(),
        current,
        lease_dir=lease_dir,
        interval_seconds=interval_seconds,
    )


@pytest.mark.unit
class TestRunOnce:
    """Tests for a single worker tick."""

    def test_drive_decisions(self, tmp_path: Path, counting_migrator: Any) -> None:
        """Supported migrations complete, downgraded ones revert, the rest are skipped."""
        active = counting_migrator(total=6, step=2)
        future = counting_migrator(total=6, done=4, step=2)
        expired = counting_migrator(total=6, step=2)
        registry = MigrationRegistry(
            [
                OutOfBandMigration(
                    id=1,
                    introduced_at=Version(1, 0),
                    deprecated_at=Version(3, 0),
                    migrator=active,
                ),
                OutOfBandMigration(id=2, introduced_at=Version(3, 0), migrator=future),
                OutOfBandMigration(
                    id=3,
                    introduced_at=Version(1, 0),
                    deprecated_at=Version(2, 0),
                    migrator=expired,
                ),
                OutOfBandMigration(id=4, introduced_at=Version(1, 0)),
            ]
        )

        result = make_worker(registry, tmp_path / "leases").run_once()

        assert result.completed == [1]
        assert result.reverted == [2]
        assert result.failed == {}
        assert active.done == 6
        assert future.done == 0
        assert expired.up_calls == 0

    def test_downgraded_at_zero_not_driven(self, tmp_path: Path, counting_migrator: Any) -> None:
        """A future migration that never ran is left alone."""
        untouched = counting_migrator(total=6, done=0)
        registry = MigrationRegistry(
            [OutOfBandMigration(id=2, introduced_at=Version(3, 0), migrator=untouched)]
        )
        result = make_worker(registry, tmp_path).run_once()
        assert result.reverted == []
        assert untouched.down_calls == 0

    def test_downgraded_empty_store_not_driven(self, tmp_path: Path, record_store: Any) -> None:
        """An empty store reports 1.0 but has nothing to revert, so the tick leaves it."""
        store = record_store()
        migrator = RecordRewriteMigrator(store, forward=dict, backward=dict)
        registry = MigrationRegistry(
            [OutOfBandMigration(id=7, introduced_at=Version(3, 0), migrator=migrator)]
        )

        first = make_worker(registry, tmp_path).run_once()
        second = make_worker(registry, tmp_path).run_once()

        assert first.failed == {}
        assert first.reverted == []
        assert second.failed == {}
        assert store.writes == 0

    def test_downgraded_record_store_reverted(self, tmp_path: Path, record_store: Any) -> None:
        """Migrated records are reverted on a downgraded instance."""
        store = record_store(
            [
                {"id": "a", "payload": "new", "migrated": True},
                {"id": "b", "payload": "old", "migrated": False},
            ]
        )
        migrator = RecordRewriteMigrator(store, forward=dict, backward=dict)
        registry = MigrationRegistry(
            [OutOfBandMigration(id=7, introduced_at=Version(3, 0), migrator=migrator)]
        )

        result = make_worker(registry, tmp_path).run_once()

        assert result.reverted == [7]
        assert store.count_records(migrated=True) == 0

    def test_failure_isolated(
        self, tmp_path: Path, counting_migrator: Any, scripted_migrator: Any
    ) -> None:
        """One failing migration does not stop the others."""
        broken = scripted_migrator([0.0], fail_on_up=RuntimeError("constraint violation"))
        healthy = counting_migrator(total=2, step=1)
        registry = MigrationRegistry(
            [
                OutOfBandMigration(id=1, introduced_at=Version(1, 0), migrator=broken),
                OutOfBandMigration(id=2, introduced_at=Version(1, 0), migrator=healthy),
            ]
        )

        result = make_worker(registry, tmp_path).run_once()

        assert list(result.failed) == [1]
        assert "constraint violation" in result.failed[1]
        assert result.completed == [2]

    def test_unexpected_error_recorded(self, tmp_path: Path) -> None:
        """Non-domain exceptions from the migrator are recorded, not raised."""
        migrator = MagicMock()
        migrator.has_applied_changes.side_effect = KeyError("boom")
        registry = MigrationRegistry(
            [OutOfBandMigration(id=8, introduced_at=Version(3, 0), migrator=migrator)]
        )
        result = make_worker(registry, tmp_path).run_once()
        assert 8 in result.failed

    def test_held_lease_skips_migration(self, tmp_path: Path, counting_migrator: Any) -> None:
        """A lease held elsewhere skips the migration for this tick."""
        migrator = counting_migrator()
        registry = MigrationRegistry(
            [OutOfBandMigration(id=5, introduced_at=Version(1, 0), migrator=migrator)]
        )

        with patch("rolling_upgrade.services.background.FileLock") as mock_filelock_class:
            mock_lock = MagicMock()
            mock_lock.acquire.side_effect = FileLockTimeout(str(tmp_path / "x.lock"))
            mock_filelock_class.return_value = mock_lock

            result = make_worker(registry, tmp_path).run_once()

        assert result.skipped_leased == [5]
        assert migrator.up_calls == 0

    def test_cancelled_context_stops_tick(self, tmp_path: Path, counting_migrator: Any) -> None:
        """A cancelled parent context drives nothing."""
        migrator = counting_migrator()
        registry = MigrationRegistry(
            [OutOfBandMigration(id=1, introduced_at=Version(1, 0), migrator=migrator)]
        )
        ctx = ExecutionContext.create("oob-worker")
        ctx.cancel()
        result = make_worker(registry, tmp_path).run_once(ctx)
        assert result.completed == []
        assert migrator.up_calls == 0

    def test_tick_counter(self, tmp_path: Path) -> None:
        """Each tick increments the counter."""
        worker = make_worker(MigrationRegistry(), tmp_path)
        worker.run_once()
        worker.run_once()
        assert worker.ticks == 2


@pytest.mark.unit
class TestMigrationLease:
    """Tests for MigrationLease."""

    def test_lock_file_named_after_migration(self, tmp_path: Path) -> None:
        """Each migration gets its own lock file."""
        lease = MigrationLease(tmp_path, 17)
        assert lease.lock_path == tmp_path / "oobmigration-17.lock"

    def test_acquire_and_release(self, tmp_path: Path) -> None:
        """The lease can be taken and given back."""
        lease = MigrationLease(tmp_path, 1)
        with lease:
            assert lease.lock_path.exists()
        with lease:
            pass

    def test_timeout_raises_lease_error(self, tmp_path: Path) -> None:
        """A filelock timeout is reported as LeaseError."""
        with patch("rolling_upgrade.services.background.FileLock") as mock_filelock_class:
            mock_lock = MagicMock()
            mock_lock.acquire.side_effect = FileLockTimeout(str(tmp_path / "x.lock"))
            mock_filelock_class.return_value = mock_lock

            lease = MigrationLease(tmp_path, 3, timeout=0.5)
            with pytest.raises(LeaseError) as exc_info:
                lease.acquire()

        assert exc_info.value.timeout == 0.5
        assert "oobmigration-3.lock" in str(exc_info.value)
        assert str(tmp_path) not in str(exc_info.value)


@pytest.mark.unit
class TestWorkerLifecycle:
    """Tests for the background thread."""

    def test_invalid_interval(self, tmp_path: Path) -> None:
        """The tick interval must be positive."""
        with pytest.raises(ValueError):
            make_worker(MigrationRegistry(), tmp_path, interval_seconds=0)

    def test_start_runs_ticks_and_stop_joins(self, tmp_path: Path, counting_migrator: Any) -> None:
        """The thread ticks until stopped."""
        migrator = counting_migrator(total=3, step=1)
        registry = MigrationRegistry(
            [OutOfBandMigration(id=1, introduced_at=Version(1, 0), migrator=migrator)]
        )
        worker = make_worker(registry, tmp_path, interval_seconds=0.01)

        worker.start()
        worker.start()  # second start is a no-op
        deadline = time.monotonic() + 5.0
        while worker.ticks < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        worker.stop()

        assert worker.ticks >= 2
        assert migrator.done == 3
        assert worker._worker_thread is not None
        assert not worker._worker_thread.is_alive()

    def test_stop_without_start(self, tmp_path: Path) -> None:
        """Stopping an idle worker is harmless."""
        make_worker(MigrationRegistry(), tmp_path).stop()
