"""Secure structured logging for the rolling upgrade planner.

Features:
    - Sensitive data masking (database DSN passwords, password=... pairs)
    - JSON structured logging format
    - Operation context integration ([op=xxx][plan] prefixes)
    - Configurable log levels and formats
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

# Patterns to mask in logs
SENSITIVE_PATTERNS = [
    (re.compile(r"(\w+://[^:/\s]+:)[^@\s]+@"), r"\1***MASKED***@"),
    (re.compile(r'password["\']?\s*[:=]\s*["\']?[^\s"\']+', re.I), "password=***MASKED***"),
    (re.compile(r'api[_-]?key["\']?\s*[:=]\s*["\']?[\w-]+', re.I), "api_key=***MASKED***"),
]


def mask_sensitive(message: str) -> str:
    """Apply every sensitive-data pattern to a message."""
    for pattern, replacement in SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def _get_operation_context() -> tuple[str | None, str | None, int | None]:
    """Get operation context without importing at module level.

    Returns:
        Tuple of (operation_id, operation, migration_id), all None outside an operation.
    """
    from rolling_upgrade.core.tracing import get_current_context

    ctx = get_current_context()
    if ctx:
        return ctx.operation_id, ctx.operation, ctx.migration_id
    return None, None, None


class SecureFormatter(logging.Formatter):
    """Formatter that masks sensitive data and includes operation context."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_trace_context: bool = True,
    ) -> None:
        """Initialize the secure formatter.

        Args:
            fmt: Format string for log messages.
            datefmt: Date format string.
            include_trace_context: Whether to include the [op=xxx][name] prefix.
        """
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.include_trace_context = include_trace_context

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        if self.include_trace_context:
            from rolling_upgrade.core.tracing import format_context_prefix

            prefix = format_context_prefix()
            if prefix:
                # "2024-01-15 10:30:00 - logger - LEVEL - [op=xxx][plan] message"
                parts = message.split(" - ", 3)
                if len(parts) == 4:
                    message = f"{parts[0]} - {parts[1]} - {parts[2]} - {prefix} {parts[3]}"
                else:
                    message = f"{prefix} {message}"

        return mask_sensitive(message)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging with operation context."""

    def __init__(self, include_trace_context: bool = True) -> None:
        super().__init__()
        self.include_trace_context = include_trace_context

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, str | int | None] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_trace_context:
            operation_id, operation, migration_id = _get_operation_context()
            if operation_id:
                log_data["operation_id"] = operation_id
                log_data["operation"] = operation
            if migration_id is not None:
                log_data["migration_id"] = migration_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return mask_sensitive(json.dumps(log_data))


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    mask_sensitive: bool = True,
    include_trace_context: bool = True,
) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
        json_format: Use JSON format for structured logging.
        mask_sensitive: Mask sensitive data in logs.
        include_trace_context: Include [op=xxx][name] in log messages.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = JSONFormatter(include_trace_context=include_trace_context)
    elif mask_sensitive:
        formatter = SecureFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            include_trace_context=include_trace_context,
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
