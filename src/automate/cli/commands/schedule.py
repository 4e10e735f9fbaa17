"""Schedule management commands.

The same handlers back both `automate schedule ...` and `automate task ...`.
"""

import asyncio
import re
from datetime import UTC, datetime
from typing import Annotated

import typer

from automate.cli.console import (
    confirm_or_cancel,
    console,
    create_table,
    dim,
    error,
    format_countdown,
    format_timestamp,
    success,
    warning,
)
from automate.cli.runtime import get_storage, load_cli_config, open_ledger
from automate.config import AutomateConfig
from automate.engine import parse_var_overrides
from automate.errors import InvalidIntervalError, LedgerError, LoadError
from automate.scheduling.interval import (
    compute_next_run_at,
    describe_interval,
    parse_interval,
)

SCHEDULE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


async def create_schedule(
    config: AutomateConfig,
    name: str,
    preset: str,
    interval: str,
    var: list[str],
) -> None:
    if not SCHEDULE_NAME_PATTERN.match(name):
        error(f'Invalid schedule name "{name}": use letters, digits, "-" and "_"')
        raise typer.Exit(1)
    try:
        descriptor = parse_interval(interval)
    except InvalidIntervalError as e:
        error(str(e))
        dim('Examples: "every 5 minutes", "hourly", "daily at 9am", "every monday at 08:30"')
        raise typer.Exit(1) from None
    try:
        loaded = get_storage(config).load_preset(preset)
    except LoadError as e:
        error(str(e))
        raise typer.Exit(1) from None

    next_run_at = compute_next_run_at(
        descriptor, datetime.now(UTC), timezone=config.timezone
    )
    async with open_ledger(config) as ledger:
        if await ledger.get_schedule(name) is not None:
            error(f'Schedule "{name}" already exists')
            raise typer.Exit(1)
        try:
            await ledger.create_schedule(
                name,
                preset,
                interval,
                next_run_at=next_run_at,
                vars=parse_var_overrides(var),
            )
        except LedgerError as e:
            error(str(e))
            raise typer.Exit(1) from None

    success(
        f'Schedule "{name}" created for preset "{loaded.name}" '
        f"({describe_interval(descriptor)}). Next run: {format_timestamp(next_run_at)}"
    )
    dim("Start the daemon to begin executing: automate daemon start")


async def list_schedules(config: AutomateConfig) -> None:
    async with open_ledger(config) as ledger:
        schedules = await ledger.list_schedules()

    if not schedules:
        warning("No schedules found")
        return

    table = create_table(
        "Schedules",
        [
            ("ID", "dim"),
            ("Name", "cyan"),
            ("Preset", ""),
            ("Interval", ""),
            ("Enabled", ""),
            ("Last Run", "dim"),
            ("Next Run", ""),
        ],
    )
    for schedule in schedules:
        table.add_row(
            str(schedule.id),
            schedule.name,
            schedule.preset_name,
            schedule.interval,
            "[green]yes[/green]" if schedule.enabled else "[dim]no[/dim]",
            format_timestamp(schedule.last_run_at),
            format_countdown(schedule.next_run_at) if schedule.enabled else "[dim]-[/dim]",
        )
    console.print(table)


async def enable_schedule(config: AutomateConfig, name: str) -> None:
    async with open_ledger(config) as ledger:
        schedule = await ledger.get_schedule(name)
        if schedule is None:
            error(f'Schedule "{name}" not found')
            raise typer.Exit(1)
        try:
            descriptor = parse_interval(schedule.interval)
        except InvalidIntervalError as e:
            error(str(e))
            raise typer.Exit(1) from None
        next_run_at = compute_next_run_at(
            descriptor, datetime.now(UTC), timezone=config.timezone
        )
        await ledger.set_schedule_enabled(name, True, next_run_at=next_run_at)
    success(f'Schedule "{name}" enabled. Next run: {format_timestamp(next_run_at)}')


async def disable_schedule(config: AutomateConfig, name: str) -> None:
    async with open_ledger(config) as ledger:
        if not await ledger.set_schedule_enabled(name, False):
            error(f'Schedule "{name}" not found')
            raise typer.Exit(1)
    success(f'Schedule "{name}" disabled')


async def delete_schedule(config: AutomateConfig, name: str, force: bool) -> None:
    async with open_ledger(config) as ledger:
        if await ledger.get_schedule(name) is None:
            error(f'Schedule "{name}" not found')
            raise typer.Exit(1)
        if not confirm_or_cancel(f'Delete schedule "{name}"?', force):
            return
        await ledger.delete_schedule(name)
    success(f'Schedule "{name}" deleted')


def register_schedule_commands(group: typer.Typer) -> None:
    """Attach create/list/enable/disable/delete to a command group."""

    @group.command("create")
    def create_cmd(
        ctx: typer.Context,
        name: Annotated[str, typer.Argument(help="Unique schedule name")],
        preset: Annotated[str, typer.Option("--preset", "-p", help="Preset to run")],
        interval: Annotated[
            str,
            typer.Option("--interval", "-i", help='e.g. "every 5 minutes", "daily at 9am"'),
        ],
        var: Annotated[
            list[str] | None,
            typer.Option("--var", help="Variable override as key=value (repeatable)"),
        ] = None,
    ) -> None:
        """Create a schedule for a preset."""
        config = load_cli_config(ctx)
        asyncio.run(create_schedule(config, name, preset, interval, var or []))

    @group.command("list")
    def list_cmd(ctx: typer.Context) -> None:
        """List schedules."""
        config = load_cli_config(ctx)
        asyncio.run(list_schedules(config))

    @group.command("enable")
    def enable_cmd(
        ctx: typer.Context,
        name: Annotated[str, typer.Argument(help="Schedule name")],
    ) -> None:
        """Enable a schedule and compute its next run."""
        config = load_cli_config(ctx)
        asyncio.run(enable_schedule(config, name))

    @group.command("disable")
    def disable_cmd(
        ctx: typer.Context,
        name: Annotated[str, typer.Argument(help="Schedule name")],
    ) -> None:
        """Disable a schedule."""
        config = load_cli_config(ctx)
        asyncio.run(disable_schedule(config, name))

    @group.command("delete")
    def delete_cmd(
        ctx: typer.Context,
        name: Annotated[str, typer.Argument(help="Schedule name")],
        force: Annotated[
            bool,
            typer.Option("--force", "-f", help="Delete without confirmation"),
        ] = False,
    ) -> None:
        """Delete a schedule. Its run history is kept."""
        config = load_cli_config(ctx)
        asyncio.run(delete_schedule(config, name, force))


def register(app: typer.Typer) -> None:
    """Register schedule subcommands."""
    schedule_app = typer.Typer(help="Manage preset schedules", no_args_is_help=True)
    app.add_typer(schedule_app, name="schedule")
    register_schedule_commands(schedule_app)
