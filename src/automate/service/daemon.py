"""Scheduler daemon lifecycle.

The daemon is a plain background process: a PID file plus signals. OS
service managers (launchd, systemd) are not involved.
"""

import asyncio
import logging
import os
import shutil
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path

from automate.config.models import AutomateConfig
from automate.config.paths import get_logs_path, get_pid_path
from automate.ledger import RunLedger
from automate.scheduling.loop import create_scheduler_loop
from automate.service.pid import (
    claim_pid_file,
    get_process_info,
    is_process_alive,
    read_pid_file,
    remove_pid_file,
    send_signal,
)

logger = logging.getLogger(__name__)

DAEMON_LOG_NAME = "daemon.log"


@dataclass
class DaemonStatus:
    running: bool
    pid: int | None = None
    uptime_seconds: float | None = None
    memory_mb: float | None = None
    cpu_percent: float | None = None


def _get_automate_command() -> list[str]:
    automate_path = shutil.which("automate")
    if automate_path:
        return [automate_path]
    return [sys.executable, "-m", "automate"]


def get_daemon_log_path() -> Path:
    return get_logs_path() / DAEMON_LOG_NAME


async def run_daemon(config: AutomateConfig, pid_path: Path | None = None) -> None:
    """Run the scheduler loop in the foreground until SIGTERM/SIGINT.

    Raises:
        DaemonAlreadyRunningError: If a live daemon owns the PID file.
    """
    pid_path = pid_path or get_pid_path()
    claim_pid_file(pid_path)
    ledger = RunLedger(database_path=config.database_path)
    loop = asyncio.get_running_loop()
    signals = (signal.SIGTERM, signal.SIGINT)
    try:
        await ledger.open()
        scheduler = create_scheduler_loop(ledger, config)
        for sig in signals:
            loop.add_signal_handler(sig, scheduler.request_stop)
        logger.info("daemon_started", extra={"process.pid": os.getpid()})
        try:
            await scheduler.run_forever()
        finally:
            for sig in signals:
                loop.remove_signal_handler(sig)
    finally:
        await ledger.close()
        remove_pid_file(pid_path, os.getpid())
        logger.info("daemon_stopped", extra={"process.pid": os.getpid()})


def build_daemon_command(config_path: Path | None = None) -> list[str]:
    """Command line for the background `daemon run` process."""
    cmd = _get_automate_command()
    if config_path is not None:
        cmd += ["--config", str(config_path.expanduser().resolve())]
    return cmd + ["daemon", "run"]


async def start_daemon(
    config_path: Path | None = None, pid_path: Path | None = None
) -> tuple[bool, str]:
    """Spawn `automate daemon run` detached from the terminal.

    The child gets the same `--config` file as the caller, if any.
    """
    pid_path = pid_path or get_pid_path()
    existing = read_pid_file(pid_path)
    if existing and existing.alive:
        return False, f"Daemon already running (pid {existing.pid})"

    log_path = get_daemon_log_path()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = build_daemon_command(config_path)

    with log_path.open("a") as log_file:  # noqa: ASYNC230
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=log_file,
            stderr=log_file,
            stdin=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )

    # Wait briefly for startup
    await asyncio.sleep(0.5)
    if proc.returncode is not None:
        return False, f"Daemon exited during startup; see {log_path}"
    return True, f"Daemon started (pid {proc.pid})"


async def stop_daemon(pid_path: Path | None = None, timeout: float = 35.0) -> tuple[bool, str]:
    """Send SIGTERM and wait for the daemon to exit, then SIGKILL.

    The default timeout covers the scheduler's shutdown grace period.

    Returns:
        (clean, message). `clean` is False only when the daemon ignored
        SIGTERM and had to be killed.
    """
    pid_path = pid_path or get_pid_path()
    proc_info = read_pid_file(pid_path)
    if not proc_info or not proc_info.alive:
        remove_pid_file(pid_path)
        return True, "Daemon is not running"

    send_signal(proc_info.pid, signal.SIGTERM)
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        await asyncio.sleep(0.1)
        if not is_process_alive(proc_info.pid):
            remove_pid_file(pid_path)
            return True, "Daemon stopped"

    logger.warning(
        "daemon_stop_timeout", extra={"process.pid": proc_info.pid, "timeout_seconds": timeout}
    )
    send_signal(proc_info.pid, signal.SIGKILL)
    await asyncio.sleep(0.1)
    remove_pid_file(pid_path)
    return False, f"Daemon did not stop within {timeout:g}s and was killed"


def daemon_status(pid_path: Path | None = None) -> DaemonStatus:
    pid_path = pid_path or get_pid_path()
    proc_info = read_pid_file(pid_path)
    if not proc_info:
        return DaemonStatus(running=False)
    if not proc_info.alive:
        # Stale PID file
        remove_pid_file(pid_path)
        return DaemonStatus(running=False)

    resources = get_process_info(proc_info.pid) or {}
    return DaemonStatus(
        running=True,
        pid=proc_info.pid,
        uptime_seconds=proc_info.uptime_seconds,
        memory_mb=resources.get("memory_mb"),
        cpu_percent=resources.get("cpu_percent"),
    )
