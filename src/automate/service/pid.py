"""PID file handling for the scheduler daemon."""

import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path

import psutil


@dataclass
class DaemonProcess:
    """What the PID file says about the daemon."""

    pid: int
    started_at: float
    alive: bool

    @property
    def uptime_seconds(self) -> float:
        return max(0.0, time.time() - self.started_at) if self.started_at else 0.0


class DaemonAlreadyRunningError(RuntimeError):
    def __init__(self, pid: int) -> None:
        self.pid = pid
        super().__init__(f"Scheduler daemon already running (pid {pid})")


def write_pid_file(pid_path: Path, pid: int | None = None) -> None:
    """Record a PID and the current time."""
    pid_path.parent.mkdir(parents=True, exist_ok=True)
    pid_path.write_text(f"{pid or os.getpid()}\n{time.time()}\n")


def read_pid_file(pid_path: Path) -> DaemonProcess | None:
    """Read the PID file. Returns None when missing or unreadable."""
    try:
        lines = pid_path.read_text().split()
    except FileNotFoundError:
        return None
    try:
        pid = int(lines[0])
        started_at = float(lines[1]) if len(lines) > 1 else 0.0
    except (ValueError, IndexError):
        return None
    return DaemonProcess(pid=pid, started_at=started_at, alive=is_process_alive(pid))


def remove_pid_file(pid_path: Path, pid: int | None = None) -> None:
    """Remove the PID file; with `pid`, only if it still names that process."""
    if pid is not None:
        current = read_pid_file(pid_path)
        if current is not None and current.pid != pid:
            return
    pid_path.unlink(missing_ok=True)


def claim_pid_file(pid_path: Path) -> None:
    """Write our PID, refusing when a live daemon already owns the file.

    A file left behind by a dead process is replaced.
    """
    existing = read_pid_file(pid_path)
    if existing is not None and existing.alive and existing.pid != os.getpid():
        raise DaemonAlreadyRunningError(existing.pid)
    write_pid_file(pid_path)


def is_process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)  # existence check only
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else
        return True
    return True


def send_signal(pid: int, sig: signal.Signals) -> bool:
    """Send a signal. Returns False if the process is gone or unreachable."""
    try:
        os.kill(pid, sig)
        return True
    except OSError:
        return False


def get_process_info(pid: int) -> dict[str, float] | None:
    """Memory and CPU usage for a PID, or None if unavailable."""
    try:
        proc = psutil.Process(pid)
        return {
            "memory_mb": proc.memory_info().rss / (1024 * 1024),
            "cpu_percent": proc.cpu_percent(interval=0.1),
        }
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None
