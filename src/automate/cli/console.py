"""Shared console utilities for CLI commands."""

from __future__ import annotations

from datetime import UTC, datetime

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

# Shared console instance for all CLI commands
console = Console()


def _say(msg: str, style: str) -> None:
    # Plain text, never parsed as markup
    console.print(Text(msg, style=style))


def error(msg: str) -> None:
    _say(msg, "red")


def warning(msg: str) -> None:
    _say(msg, "yellow")


def success(msg: str) -> None:
    _say(msg, "green")


def info(msg: str) -> None:
    _say(msg, "cyan")


def dim(msg: str) -> None:
    _say(msg, "dim")


def create_table(
    title: str,
    columns: list[tuple[str, str | dict]],
) -> Table:
    """Create a styled table with consistent formatting.

    Args:
        title: Table title.
        columns: List of (name, style) or (name, kwargs_dict) tuples.

    Returns:
        Configured Rich Table.
    """
    table = Table(title=title)
    for name, style_or_kwargs in columns:
        if isinstance(style_or_kwargs, dict):
            table.add_column(name, **style_or_kwargs)
        else:
            table.add_column(name, style=style_or_kwargs)
    return table


def confirm_or_cancel(prompt: str, force: bool) -> bool:
    """Return True if the user confirms (or force is set). Print cancel on decline."""
    if force:
        return True
    confirmed = typer.confirm(prompt)
    if not confirmed:
        dim("Cancelled")
    return confirmed


def format_duration(ms: int | None) -> str:
    if ms is None:
        return "-"
    if ms < 1000:
        return f"{ms}ms"
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_countdown(next_fire: datetime | None) -> str:
    """Format a countdown string for the next fire time."""
    if next_fire is None:
        return "[dim]-[/dim]"

    now = datetime.now(UTC)
    if next_fire <= now:
        return "[green]now[/green]"

    total_seconds = int((next_fire - now).total_seconds())
    if total_seconds < 60:
        return f"in {total_seconds}s"

    total_minutes = total_seconds // 60
    if total_minutes < 60:
        return f"in {total_minutes}m"

    hours, minutes = divmod(total_minutes, 60)
    if hours < 24:
        return f"in {hours}h {minutes}m" if minutes else f"in {hours}h"

    days, hours = divmod(hours, 24)
    return f"in {days}d {hours}h" if hours else f"in {days}d"


STATUS_STYLES = {
    "success": "green",
    "error": "red",
    "skipped": "yellow",
    "running": "cyan",
}


def styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"
