"""Centralized path management for automate.

All state (config, presets, ledger, logs) is stored under a single base
directory. The base directory can be overridden with the AUTOMATE_HOME
environment variable.

Default locations:
- Linux/macOS: ~/.automate
- Windows: %USERPROFILE%\\.automate
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "AUTOMATE_HOME"


def get_system_timezone() -> str:
    """Detect system timezone, falling back to UTC.

    Resolution order:
    1. TZ environment variable (if set)
    2. /etc/timezone file (Debian/Ubuntu)
    3. /etc/localtime symlink target (most Linux distros, macOS)
    4. Fallback to UTC

    Returns:
        IANA timezone name (e.g., "America/Los_Angeles", "Europe/London", "UTC").
    """
    if tz := os.environ.get("TZ"):
        return tz

    try:
        tz = Path("/etc/timezone").read_text().strip()
        if tz:
            return tz
    except (FileNotFoundError, PermissionError):
        pass

    try:
        link = Path("/etc/localtime").resolve()
        parts = str(link).split("zoneinfo/")
        if len(parts) > 1:
            return parts[1]
    except (FileNotFoundError, PermissionError):
        pass

    return "UTC"


@lru_cache(maxsize=1)
def get_automate_home() -> Path:
    """Get the base directory for all automate data.

    Resolution order:
    1. AUTOMATE_HOME environment variable (if set)
    2. Platform default (~/.automate)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()

    return Path.home() / ".automate"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_automate_home() / "config.toml"


def get_presets_path() -> Path:
    """Get the directory holding preset JSON files."""
    return get_automate_home() / "presets"


def get_database_path() -> Path:
    """Get the run ledger database path."""
    return get_automate_home() / "automate.db"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_automate_home() / "logs"


def get_run_path() -> Path:
    """Get the runtime directory path (PID files)."""
    return get_automate_home() / "run"


def get_pid_path() -> Path:
    """Get the scheduler daemon PID file path."""
    return get_run_path() / "daemon.pid"
