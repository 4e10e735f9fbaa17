"""Configuration models using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from automate.config.paths import (
    get_database_path,
    get_presets_path,
    get_system_timezone,
)
from automate.errors import AutomateError


class SchedulerConfig(BaseModel):
    """Configuration for the scheduler daemon loop."""

    # Seconds between polls of the ledger for due schedules
    poll_interval: float = Field(default=30.0, ge=1.0, le=3600.0)
    # Upper bound for a single step; None disables the limit
    step_timeout: float | None = Field(default=300.0, gt=0)
    # `running` rows older than this are marked as errors on daemon startup
    stale_run_after: float = Field(default=3600.0, gt=0)
    # How long in-flight runs may finish after a stop request
    shutdown_grace: float = Field(default=30.0, ge=0)
    # Run distinct due schedules as concurrent tasks
    concurrent: bool = True


class LoggingConfig(BaseModel):
    """Configuration for log output."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    retention_days: int = Field(default=7, ge=1)
    redact_secrets: bool = True
    # Extra regexes masked in log output, on top of the built-in token patterns
    redact_patterns: list[str] = Field(default_factory=list)

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


class ConfigError(AutomateError):
    """Configuration error."""

    pass


class AutomateConfig(BaseModel):
    """Root configuration model."""

    presets_dir: Path = Field(default_factory=get_presets_path)
    database_path: Path = Field(default_factory=get_database_path)
    timezone: str = Field(default_factory=get_system_timezone)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("presets_dir", "database_path", mode="after")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone {value!r}") from e
        return value
