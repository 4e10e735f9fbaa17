"""Configuration loading from TOML files and environment variables."""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from automate.config.models import AutomateConfig, ConfigError
from automate.config.paths import get_config_path

logger = logging.getLogger(__name__)

# Environment variables that override top-level keys
ENV_OVERRIDES = {
    "AUTOMATE_PRESETS_DIR": ("presets_dir",),
    "AUTOMATE_DATABASE_PATH": ("database_path",),
    "AUTOMATE_TIMEZONE": ("timezone",),
    "AUTOMATE_LOG_LEVEL": ("logging", "level"),
}


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("automate.toml"),  # Current directory
        get_config_path(),  # ~/.automate/config.toml (or AUTOMATE_HOME)
        Path("/etc/automate/config.toml"),  # System-wide
    ]


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    for env_var, keys in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if not value:
            continue
        section = config
        for key in keys[:-1]:
            section = section.setdefault(key, {})
        section[keys[-1]] = value
    return config


def load_config(path: Path | None = None) -> AutomateConfig:
    """Load configuration from a TOML file.

    Args:
        path: Explicit path to config file. If None, searches default
            locations and falls back to built-in defaults when none exist.

    Returns:
        Validated AutomateConfig instance.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigError: If the config file is unreadable or invalid.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in _get_default_config_paths():
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
        logger.debug("config_loaded", extra={"file.path": str(config_path)})

    raw_config = _apply_env_overrides(raw_config)

    try:
        return AutomateConfig.model_validate(raw_config)
    except ValidationError as e:
        source = str(config_path) if config_path else "environment"
        raise ConfigError(f"Invalid configuration ({source}): {e}") from e
