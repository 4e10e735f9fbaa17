"""Task commands: schedules plus manual runs and run history."""

import asyncio
from typing import Annotated

import typer
from rich.markup import escape

from automate.cli.commands.run import print_run_result
from automate.cli.commands.schedule import register_schedule_commands
from automate.cli.console import (
    console,
    create_table,
    dim,
    error,
    format_duration,
    format_timestamp,
    info,
    styled_status,
)
from automate.cli.runtime import (
    execute_preset,
    get_storage,
    load_cli_config,
    open_ledger,
)
from automate.config import AutomateConfig
from automate.engine import RunOptions, RunResult
from automate.errors import ConfigurationError, LoadError
from automate.ledger import RunRecord

DEFAULT_HISTORY_LIMIT = 20
RECENT_RUNS_LIMIT = 10


def _runs_table(title: str, runs: list[RunRecord]) -> None:
    table = create_table(
        title,
        [
            ("ID", "dim"),
            ("Preset", "cyan"),
            ("Trigger", ""),
            ("Status", ""),
            ("Started", "dim"),
            ("Duration", {"justify": "right"}),
            ("Steps", {"justify": "right"}),
        ],
    )
    for run in runs:
        duration = (
            format_duration(run.duration_ms)
            if run.duration_ms is not None
            else "[dim]running...[/dim]"
        )
        table.add_row(
            str(run.id),
            run.preset_name,
            run.trigger_type,
            styled_status(run.status),
            format_timestamp(run.started_at),
            duration,
            str(run.step_count),
        )
    console.print(table)


async def run_task(config: AutomateConfig, name: str, verbose: bool) -> RunResult:
    async with open_ledger(config) as ledger:
        schedule = await ledger.get_schedule(name)
    if schedule is None:
        error(f'Task "{name}" not found')
        raise typer.Exit(1)

    try:
        preset = get_storage(config).load_preset(schedule.preset_name)
    except LoadError as e:
        error(str(e))
        raise typer.Exit(1) from None

    info(f"Running {preset.name} (task {schedule.name})")
    options = RunOptions(vars=schedule.var_overrides, verbose=verbose)
    return await execute_preset(
        config, preset, options, schedule_id=schedule.id, trigger_type="manual"
    )


async def show_history(config: AutomateConfig, limit: int) -> None:
    async with open_ledger(config) as ledger:
        runs = await ledger.list_runs(limit=limit)
    if not runs:
        dim("No runs recorded yet")
        return
    _runs_table("Run History", runs)


async def show_run(config: AutomateConfig, run_id: int) -> None:
    async with open_ledger(config) as ledger:
        run = await ledger.get_run(run_id)
        if run is None:
            error(f"Run #{run_id} not found")
            raise typer.Exit(1)
        logs = await ledger.get_run_logs(run_id)

    console.print(f"[bold]Run #{run.id}[/bold]: {run.preset_name}")
    duration = format_duration(run.duration_ms) if run.duration_ms is not None else "running"
    console.print(
        f"Trigger: {run.trigger_type} | Status: {styled_status(run.status)} | Duration: {duration}"
    )
    if run.schedule_name:
        dim(f"Schedule: {run.schedule_name}")
    if run.error:
        error(f"Error: {run.error}")

    if not logs:
        dim("No step logs recorded")
        return

    table = create_table(
        "Steps",
        [
            ("#", "dim"),
            ("Step", ""),
            ("Action", "cyan"),
            ("Status", ""),
            ("Duration", {"justify": "right"}),
            ("Error", "red"),
        ],
    )
    for log in logs:
        table.add_row(
            str(log.step_index + 1),
            log.step_name,
            log.action,
            styled_status(log.status),
            format_duration(log.duration_ms),
            escape((log.error or "")[:80]),
        )
    console.print(table)


async def show_task(config: AutomateConfig, name: str) -> None:
    async with open_ledger(config) as ledger:
        schedule = await ledger.get_schedule(name)
        if schedule is None:
            error(f'Task "{name}" not found')
            raise typer.Exit(1)
        runs = await ledger.list_runs(limit=RECENT_RUNS_LIMIT, schedule_id=schedule.id)

    console.print(f"[bold]{schedule.name}[/bold]")
    console.print(f"Preset: [cyan]{schedule.preset_name}[/cyan]")
    console.print(f"Interval: {schedule.interval}")
    console.print(f"Enabled: {'[green]yes[/green]' if schedule.enabled else '[dim]no[/dim]'}")
    console.print(f"Last run: {format_timestamp(schedule.last_run_at)}")
    console.print(
        f"Next run: {format_timestamp(schedule.next_run_at) if schedule.enabled else '-'}"
    )
    if schedule.vars:
        console.print("Variables: " + ", ".join(schedule.var_overrides), markup=False)

    if runs:
        _runs_table("Recent Runs", runs)


def register(app: typer.Typer) -> None:
    """Register task subcommands."""
    task_app = typer.Typer(help="Manage scheduled tasks and run history", no_args_is_help=True)
    app.add_typer(task_app, name="task")
    register_schedule_commands(task_app)

    @task_app.command("run")
    def task_run(
        ctx: typer.Context,
        name: Annotated[str, typer.Argument(help="Task name")],
        verbose: Annotated[
            bool,
            typer.Option("--verbose", "-v", help="Show step output"),
        ] = False,
    ) -> None:
        """Run a task's preset now (recorded as a manual run)."""
        config = load_cli_config(ctx)
        try:
            result = asyncio.run(run_task(config, name, verbose))
        except ConfigurationError as e:
            error(str(e))
            raise typer.Exit(1) from None
        print_run_result(result, verbose=verbose)
        if not result.success:
            raise typer.Exit(1)

    @task_app.command("history")
    def task_history(
        ctx: typer.Context,
        limit: Annotated[
            int,
            typer.Option("--limit", "-n", min=1, help="Number of runs to show"),
        ] = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        """Show recent runs."""
        config = load_cli_config(ctx)
        asyncio.run(show_history(config, limit))

    @task_app.command("show")
    def task_show(
        ctx: typer.Context,
        name_or_id: Annotated[
            str,
            typer.Argument(help="Task name, or a numeric run ID"),
        ],
    ) -> None:
        """Show a task (by name) or a run with its step logs (by numeric ID)."""
        config = load_cli_config(ctx)
        if name_or_id.isdigit():
            asyncio.run(show_run(config, int(name_or_id)))
        else:
            asyncio.run(show_task(config, name_or_id))
