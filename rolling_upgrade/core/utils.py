"""Shared utility functions for the rolling upgrade planner."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware).

    Returns:
        A timezone-aware datetime object representing the current time in UTC.

    Example:
        >>> from rolling_upgrade.core.utils import utc_now
        >>> now = utc_now()
        >>> now.tzinfo is not None
        True
    """
    return datetime.now(timezone.utc)
