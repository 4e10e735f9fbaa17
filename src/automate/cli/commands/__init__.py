"""CLI command modules."""

from automate.cli.commands import daemon, presets, run, schedule, task

__all__ = [
    "daemon",
    "presets",
    "run",
    "schedule",
    "task",
]
