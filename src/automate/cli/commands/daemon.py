"""Scheduler daemon commands."""

import asyncio

import typer

from automate.cli.console import console, create_table, dim, error, success, warning
from automate.cli.runtime import get_config_path, load_cli_config


def _format_uptime(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.0f}s"
    if seconds < 3600:
        return f"{seconds / 60:.0f}m"
    if seconds < 86400:
        return f"{seconds / 3600:.1f}h"
    return f"{seconds / 86400:.1f}d"


def register(app: typer.Typer) -> None:
    """Register daemon subcommands."""
    daemon_app = typer.Typer(help="Run the scheduler daemon", no_args_is_help=True)
    app.add_typer(daemon_app, name="daemon")

    @daemon_app.command("run")
    def daemon_run(ctx: typer.Context) -> None:
        """Run the scheduler in the foreground until interrupted."""
        from automate.logging import configure_logging, configure_redaction
        from automate.service import DaemonAlreadyRunningError, run_daemon

        config = load_cli_config(ctx)
        configure_logging(
            level=config.logging.level,
            use_rich=True,
            log_to_file=True,
            retention_days=config.logging.retention_days,
        )
        configure_redaction(
            enabled=config.logging.redact_secrets,
            extra_patterns=config.logging.redact_patterns,
        )
        try:
            asyncio.run(run_daemon(config))
        except DaemonAlreadyRunningError as e:
            error(str(e))
            raise typer.Exit(1) from None
        except KeyboardInterrupt:
            console.print("\n[bold yellow]Scheduler stopped[/bold yellow]")

    @daemon_app.command("start")
    def daemon_start(ctx: typer.Context) -> None:
        """Start the scheduler daemon in the background."""
        from automate.service import start_daemon

        # Fail here rather than in the detached child
        load_cli_config(ctx)
        started, message = asyncio.run(start_daemon(config_path=get_config_path(ctx)))
        if started:
            success(message)
        else:
            error(message)
            raise typer.Exit(1)

    @daemon_app.command("stop")
    def daemon_stop() -> None:
        """Stop the scheduler daemon."""
        from automate.service import stop_daemon

        clean, message = asyncio.run(stop_daemon())
        if clean:
            success(message)
        else:
            warning(message)

    @daemon_app.command("status")
    def daemon_status() -> None:
        """Show scheduler daemon status."""
        from automate.service import daemon_status as get_status
        from automate.service.daemon import get_daemon_log_path

        status = get_status()
        if not status.running:
            warning("Daemon is not running")
            dim("Start it with: automate daemon start")
            return

        table = create_table("Scheduler Daemon", [("Property", "cyan"), ("Value", "")])
        table.add_row("State", "[green]running[/green]")
        table.add_row("PID", str(status.pid))
        if status.uptime_seconds is not None:
            table.add_row("Uptime", _format_uptime(status.uptime_seconds))
        if status.memory_mb is not None:
            table.add_row("Memory", f"{status.memory_mb:.1f} MB")
        if status.cpu_percent is not None:
            table.add_row("CPU", f"{status.cpu_percent:.1f}%")
        table.add_row("Log", str(get_daemon_log_path()))
        console.print(table)
