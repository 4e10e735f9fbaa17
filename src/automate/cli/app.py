"""Main CLI application."""

from pathlib import Path
from typing import Annotated

import typer

from automate.cli.commands import daemon, presets, run, schedule, task
from automate.cli.runtime import CliState

app = typer.Typer(
    name="automate",
    help="Automate - run declarative presets on demand or on a schedule",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Log level for console output (default: WARNING)",
        ),
    ] = None,
) -> None:
    """Automate - run declarative presets on demand or on a schedule."""
    from automate.logging import configure_logging

    ctx.obj = CliState(config_path=config)
    configure_logging(level=log_level or "WARNING")


run.register(app)
presets.register(app)
schedule.register(app)
task.register(app)
daemon.register(app)
