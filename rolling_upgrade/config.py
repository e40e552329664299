"""Configuration system for the rolling upgrade planner."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Rolling Upgrade Configuration."""

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_json: bool = Field(
        default=False,
        description="Emit structured JSON log lines",
    )

    # Definition history
    definitions_path: Path = Field(
        default=Path("./migrations"),
        description="Directory with one sub-directory of schema definitions per release tag",
    )
    schema_names: list[str] = Field(
        default_factory=lambda: ["frontend", "codeintel", "codeinsights"],
        min_length=1,
        description="Schemas included in every upgrade step",
    )
    snapshot_fetch_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum concurrent snapshot fetches per schema",
    )

    # Version policy
    last_minor_in_series: dict[int, int] = Field(
        default_factory=lambda: {3: 47},
        description="Last minor release of each major series (3.47 is followed by 4.0)",
    )

    # Out-of-band migrations
    oob_registry_path: Path | None = Field(
        default=None,
        description="JSON file listing out-of-band migrations and their validity intervals",
    )
    storage_path: Path = Field(
        default=Path("./.rolling-upgrade/data"),
        description="LanceDB directory holding record tables rewritten by out-of-band migrations",
    )
    migrator_batch_size: int = Field(
        default=100,
        ge=1,
        description="Records rewritten per out-of-band migration batch",
    )
    migrator_max_stalled_iterations: int = Field(
        default=2,
        ge=1,
        description="Consecutive batches without progress before a drive fails",
    )

    # Background worker
    worker_interval_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds between out-of-band migration worker ticks",
    )
    lease_dir: Path = Field(
        default=Path("./.rolling-upgrade/leases"),
        description="Directory holding per-migration execution lease files",
    )
    lease_timeout_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Seconds to wait for a held execution lease before skipping",
    )

    @field_validator("last_minor_in_series", mode="after")
    @classmethod
    def _check_series(cls, value: dict[int, int]) -> dict[int, int]:
        for major, minor in value.items():
            if major < 0 or minor < 0:
                raise ValueError(f"Invalid series boundary {major}.{minor}")
        return value

    @field_validator("log_level", mode="after")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    model_config = {
        "env_prefix": "ROLLING_UPGRADE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


# Settings singleton with dependency injection support
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the settings instance (lazy-loaded singleton).

    Example:
        from rolling_upgrade.config import get_settings
        settings = get_settings()
        print(settings.definitions_path)
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def override_settings(new_settings: Settings) -> None:
    """Override the settings instance (for testing).

    Example:
        from rolling_upgrade.config import override_settings, Settings
        override_settings(Settings(definitions_path="/tmp/defs"))
    """
    global _settings
    _settings = new_settings


def reset_settings() -> None:
    """Reset settings to None (forces reload on next get_settings call)."""
    global _settings
    _settings = None
