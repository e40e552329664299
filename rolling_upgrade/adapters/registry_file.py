"""Load out-of-band migration intervals from a JSON file.

Planning only needs each migration's ID and validity interval, so the
registry file carries no migrator implementations:

    [
        {"id": 12, "description": "Backfill owners", "introduced": "3.40", "deprecated": "4.0"},
        {"id": 15, "introduced": "3.44"}
    ]
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from rolling_upgrade.core.errors import (
    ConfigurationError,
    ValidationError,
    sanitize_path_for_error,
)
from rolling_upgrade.core.oobmigration import MigrationRegistry, OutOfBandMigration
from rolling_upgrade.core.version import Version

logger = logging.getLogger(__name__)


def load_registry_file(path: Path) -> MigrationRegistry:
    """Build a MigrationRegistry from a JSON registry file.

    Raises:
        ConfigurationError: If the file is missing, malformed, or holds an
            invalid record.
    """
    name = sanitize_path_for_error(path)
    try:
        records = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read migration registry {name}: {e.strerror or type(e).__name__}"
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Malformed migration registry {name}: {e}") from e

    if not isinstance(records, list):
        raise ConfigurationError(f"Migration registry {name} must contain a JSON list")

    registry = MigrationRegistry()
    for index, record in enumerate(records):
        try:
            registry.register(_parse_record(record))
        except (ValidationError, ValueError, KeyError, TypeError) as e:
            raise ConfigurationError(f"Invalid record #{index} in {name}: {e}") from e

    logger.info(f"Loaded {len(registry)} out-of-band migrations from {name}")
    return registry


def _parse_record(record: Any) -> OutOfBandMigration:
    if not isinstance(record, dict):
        raise TypeError("record must be an object")
    deprecated = record.get("deprecated")
    return OutOfBandMigration(
        id=int(record["id"]),
        description=str(record.get("description", "")),
        introduced_at=Version.parse(str(record["introduced"])),
        deprecated_at=Version.parse(str(deprecated)) if deprecated else None,
    )
