"""Run a preset."""

import asyncio
from typing import Annotated

import typer
from rich.markup import escape

from automate.cli.console import (
    console,
    create_table,
    dim,
    error,
    format_duration,
    styled_status,
)
from automate.cli.runtime import execute_preset, get_storage, load_cli_config
from automate.engine import RunOptions, RunResult
from automate.engine.expressions import stringify
from automate.errors import ConfigurationError, LoadError

OUTPUT_PREVIEW_CHARS = 80


def print_run_result(result: RunResult, verbose: bool = False) -> None:
    """Print the step table and a one-line summary."""
    if result.steps:
        table = create_table(
            f"Run: {result.preset}",
            [
                ("#", "dim"),
                ("Step", ""),
                ("Action", "cyan"),
                ("Status", ""),
                ("Duration", {"justify": "right"}),
                ("Detail", ""),
            ],
        )
        for index, step in enumerate(result.steps, start=1):
            if step.error:
                detail = f"[red]{escape(step.error[:OUTPUT_PREVIEW_CHARS])}[/red]"
            elif verbose or step.status == "skipped":
                detail = escape(stringify(step.output)[:OUTPUT_PREVIEW_CHARS])
            else:
                detail = ""
            table.add_row(
                str(index),
                step.name,
                step.action,
                styled_status(step.status),
                format_duration(step.duration_ms),
                detail,
            )
        console.print(table)

    passed = sum(1 for s in result.steps if s.status == "success")
    failed = sum(1 for s in result.steps if s.status == "error")
    skipped = sum(1 for s in result.steps if s.status == "skipped")
    parts = [f"{passed} passed"]
    if failed:
        parts.append(f"{failed} failed")
    if skipped:
        parts.append(f"{skipped} skipped")
    counts = ", ".join(parts)
    duration = format_duration(result.total_duration)

    if result.success:
        console.print(f"[green]Done in {duration} ({counts})[/green]")
    else:
        console.print(f"[red]Failed after {duration} ({counts})[/red]")
        if result.error:
            error(result.error)


def register(app: typer.Typer) -> None:
    """Register the run command."""

    @app.command()
    def run(
        ctx: typer.Context,
        preset: Annotated[
            str,
            typer.Argument(help="Preset name or path to a preset JSON file"),
        ],
        dry_run: Annotated[
            bool,
            typer.Option("--dry-run", "-n", help="Show what would run without running it"),
        ] = False,
        var: Annotated[
            list[str] | None,
            typer.Option("--var", help="Variable override as key=value (repeatable)"),
        ] = None,
        verbose: Annotated[
            bool,
            typer.Option("--verbose", "-v", help="Show step output"),
        ] = False,
    ) -> None:
        """Run a preset.

        Examples:
            automate run backup --var target=/mnt/usb
            automate run ./presets/deploy.json --dry-run
        """
        config = load_cli_config(ctx)
        try:
            loaded = get_storage(config).load_preset(preset)
        except LoadError as e:
            error(str(e))
            raise typer.Exit(1) from None

        options = RunOptions(dry_run=dry_run, vars=var or [], verbose=verbose)
        if dry_run:
            dim("Dry run: no actions will be executed")
        try:
            result = asyncio.run(execute_preset(config, loaded, options))
        except ConfigurationError as e:
            error(str(e))
            raise typer.Exit(1) from None

        print_run_result(result, verbose=verbose)
        if not result.success:
            raise typer.Exit(1)
