"""Daemon process lifecycle helpers."""

from automate.service.daemon import (
    DaemonStatus,
    daemon_status,
    run_daemon,
    start_daemon,
    stop_daemon,
)
from automate.service.pid import DaemonAlreadyRunningError

__all__ = [
    "DaemonAlreadyRunningError",
    "DaemonStatus",
    "daemon_status",
    "run_daemon",
    "start_daemon",
    "stop_daemon",
]
