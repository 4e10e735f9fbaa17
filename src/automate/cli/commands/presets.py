"""Preset inspection commands."""

from typing import Annotated

import typer

from automate.cli.console import console, create_table, dim, error, success, warning
from automate.cli.runtime import get_storage, load_cli_config
from automate.errors import LoadError, SchemaValidationError


def register(app: typer.Typer) -> None:
    """Register preset subcommands."""
    presets_app = typer.Typer(help="Inspect and validate presets", no_args_is_help=True)
    app.add_typer(presets_app, name="presets")

    @presets_app.command("list")
    def presets_list(ctx: typer.Context) -> None:
        """List presets in the presets directory."""
        config = load_cli_config(ctx)
        storage = get_storage(config)
        summaries = storage.list_presets()
        if not summaries:
            warning(f"No presets found in {storage.presets_dir}")
            return

        table = create_table(
            "Presets",
            [
                ("Name", "cyan"),
                ("File", "dim"),
                ("Steps", {"justify": "right"}),
                ("Description", ""),
            ],
        )
        for summary in summaries:
            table.add_row(
                summary.name,
                summary.file_name,
                str(summary.step_count),
                summary.description or "",
            )
        console.print(table)

    @presets_app.command("show")
    def presets_show(
        ctx: typer.Context,
        preset: Annotated[str, typer.Argument(help="Preset name or path")],
    ) -> None:
        """Show a preset's variables and steps."""
        config = load_cli_config(ctx)
        try:
            loaded = get_storage(config).load_preset(preset)
        except LoadError as e:
            error(str(e))
            raise typer.Exit(1) from None

        console.print(f"[bold]{loaded.name}[/bold]")
        if loaded.description:
            dim(loaded.description)

        if loaded.vars:
            vars_table = create_table(
                "Variables",
                [("Name", "cyan"), ("Type", ""), ("Required", ""), ("Default", "dim")],
            )
            for name, definition in loaded.vars.items():
                vars_table.add_row(
                    name,
                    definition.type,
                    "yes" if definition.is_required else "no",
                    "" if definition.default is None else str(definition.default),
                )
            console.print(vars_table)

        steps_table = create_table(
            "Steps",
            [
                ("ID", "cyan"),
                ("Name", ""),
                ("Action", ""),
                ("On Error", "dim"),
                ("Flow", "dim"),
            ],
        )
        for step in loaded.steps:
            flow = ""
            if step.is_conditional:
                flow = f"if {step.condition} then {step.then or 'next'} else {step.else_ or 'next'}"
            elif step.condition:
                flow = f"when {step.condition}"
            steps_table.add_row(step.id, step.name, step.action, step.on_error, flow)
        console.print(steps_table)

    @presets_app.command("validate")
    def presets_validate(
        ctx: typer.Context,
        preset: Annotated[str, typer.Argument(help="Preset name or path")],
    ) -> None:
        """Validate a preset's structure and step graph."""
        config = load_cli_config(ctx)
        try:
            loaded = get_storage(config).load_preset(preset)
        except SchemaValidationError as e:
            error(f"Invalid preset: {e.source or preset}")
            for message in e.errors:
                console.print(f"  - {message}", markup=False)
            raise typer.Exit(1) from None
        except LoadError as e:
            error(str(e))
            raise typer.Exit(1) from None

        success(f'Preset "{loaded.name}" is valid ({len(loaded.steps)} steps)')
