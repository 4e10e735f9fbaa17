"""Configuration module."""

from automate.config.loader import load_config
from automate.config.models import (
    AutomateConfig,
    ConfigError,
    LoggingConfig,
    SchedulerConfig,
)
from automate.config.paths import (
    get_automate_home,
    get_config_path,
    get_database_path,
    get_logs_path,
    get_pid_path,
    get_presets_path,
)

__all__ = [
    "AutomateConfig",
    "ConfigError",
    "LoggingConfig",
    "SchedulerConfig",
    "get_automate_home",
    "get_config_path",
    "get_database_path",
    "get_logs_path",
    "get_pid_path",
    "get_presets_path",
    "load_config",
]
