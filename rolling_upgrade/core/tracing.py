"""Execution context, cancellation and timing utilities.

Every planning call and every migrator drive runs inside an ExecutionContext.
The context is passed explicitly to migrator methods as their `ctx` argument
and is also published through a contextvar so log lines can be prefixed with
the operation that produced them.

Usage:
    from rolling_upgrade.core.tracing import operation_context, TimingContext

    with operation_context("plan") as ctx:
        timing = TimingContext()
        with timing.measure("stitch"):
            ...
        runner.drive_to_completion(migrator, ctx)
"""

from __future__ import annotations

import contextvars
import threading
import time
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contextvars import Token

from rolling_upgrade.core.errors import MigrationCancelledError
from rolling_upgrade.core.utils import utc_now


@dataclass
class ExecutionContext:
    """Context for one planning or migration operation.

    Attributes:
        operation_id: Unique identifier for the operation (first 12 chars of UUID).
        operation: Name of the operation ("plan", "drive-up", ...).
        started_at: When the operation started.
        migration_id: Out-of-band migration being driven, if any.
        cancel_event: Set to request cancellation between batches.
    """

    operation_id: str
    operation: str
    started_at: datetime
    migration_id: int | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def create(
        cls,
        operation: str,
        migration_id: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ExecutionContext:
        """Create a new context with an auto-generated ID.

        Example:
            ctx = ExecutionContext.create("drive-up", migration_id=12)
        """
        return cls(
            operation_id=uuid.uuid4().hex[:12],
            operation=operation,
            started_at=utc_now(),
            migration_id=migration_id,
            cancel_event=cancel_event or threading.Event(),
        )

    def child(self, operation: str, migration_id: int | None = None) -> ExecutionContext:
        """Derive a context that shares this context's cancellation signal."""
        return ExecutionContext(
            operation_id=self.operation_id,
            operation=operation,
            started_at=utc_now(),
            migration_id=migration_id,
            cancel_event=self.cancel_event,
        )

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Request cancellation; in-flight batches still complete or roll back."""
        self.cancel_event.set()

    def raise_if_cancelled(self) -> None:
        """Raise MigrationCancelledError if cancellation was requested."""
        if self.cancel_event.is_set():
            raise MigrationCancelledError(
                f"{self.operation} cancelled", migration_id=self.migration_id
            )

    def elapsed_ms(self) -> float:
        return (utc_now() - self.started_at).total_seconds() * 1000


_context: contextvars.ContextVar[ExecutionContext | None] = contextvars.ContextVar(
    "execution_context", default=None
)


def get_current_context() -> ExecutionContext | None:
    """Get the current execution context, or None outside an operation."""
    return _context.get()


def set_context(ctx: ExecutionContext) -> Token[ExecutionContext | None]:
    """Set the current execution context.

    Returns:
        A token that can be used to reset the context.
    """
    return _context.set(ctx)


def clear_context(token: Token[ExecutionContext | None]) -> None:
    """Reset the context to its previous value."""
    _context.reset(token)


@contextmanager
def operation_context(
    operation: str,
    migration_id: int | None = None,
    parent: ExecutionContext | None = None,
) -> Generator[ExecutionContext, None, None]:
    """Create an ExecutionContext, make it current, and clear it on exit.

    Args:
        operation: Name of the operation.
        migration_id: Optional out-of-band migration being driven.
        parent: Optional context whose cancellation signal should be shared.

    Yields:
        The created ExecutionContext.
    """
    if parent is not None:
        ctx = parent.child(operation, migration_id=migration_id)
    else:
        ctx = ExecutionContext.create(operation, migration_id=migration_id)
    token = set_context(ctx)
    try:
        yield ctx
    finally:
        clear_context(token)


@dataclass
class TimingContext:
    """Context for measuring operation timings.

    Attributes:
        timings: Dictionary mapping operation names to durations in milliseconds.
        start: Start time of the context (perf_counter value).
    """

    timings: dict[str, float] = field(default_factory=dict)
    start: float = field(default_factory=time.perf_counter)

    @contextmanager
    def measure(self, name: str) -> Generator[None, None, None]:
        """Measure the duration of a named phase."""
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self.timings[name] = (time.perf_counter() - t0) * 1000

    def total_ms(self) -> float:
        return (time.perf_counter() - self.start) * 1000

    def summary(self) -> dict[str, float]:
        """Get all named timings plus 'total_ms' and 'other_ms'."""
        total = self.total_ms()
        measured = sum(self.timings.values())
        return {
            **self.timings,
            "total_ms": total,
            "other_ms": max(0.0, total - measured),
        }


def format_context_prefix() -> str:
    """Format the current context as a log prefix.

    Returns:
        A string like "[op=abc123][plan]" or "" if no context.
    """
    ctx = get_current_context()
    if ctx is None:
        return ""

    parts = [f"[op={ctx.operation_id}]", f"[{ctx.operation}]"]
    if ctx.migration_id is not None:
        parts.append(f"[oob={ctx.migration_id}]")
    return "".join(parts)
