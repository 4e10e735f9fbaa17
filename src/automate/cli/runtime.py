"""Shared runtime helpers for CLI command handlers."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import typer

from automate.actions import create_default_registry
from automate.cli.console import error, warning
from automate.config import AutomateConfig, ConfigError, load_config
from automate.engine import PresetEngine, RunOptions, RunResult
from automate.engine.types import TriggerType
from automate.errors import LedgerError
from automate.ledger import RunLedger, RunLogger
from automate.presets import Preset, PresetStorage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CliState:
    """Values from global options, stored on the typer context."""

    config_path: Path | None = None


def get_config_path(ctx: typer.Context) -> Path | None:
    """The global --config option, if given."""
    state = ctx.find_object(CliState)
    return state.config_path if state else None


def load_cli_config(ctx: typer.Context) -> AutomateConfig:
    """Load configuration or exit with an error message."""
    try:
        return load_config(get_config_path(ctx))
    except (ConfigError, FileNotFoundError) as e:
        error(str(e))
        raise typer.Exit(1) from None


def get_storage(config: AutomateConfig) -> PresetStorage:
    return PresetStorage(config.presets_dir)


@asynccontextmanager
async def open_ledger(config: AutomateConfig) -> AsyncGenerator[RunLedger, None]:
    """Open the ledger for one command; exit with an error if unusable."""
    ledger = RunLedger(database_path=config.database_path)
    try:
        await ledger.open()
    except LedgerError as e:
        error(str(e))
        raise typer.Exit(1) from None
    try:
        yield ledger
    finally:
        await ledger.close()


async def execute_preset(
    config: AutomateConfig,
    preset: Preset,
    options: RunOptions,
    *,
    schedule_id: int | None = None,
    trigger_type: TriggerType = "manual",
) -> RunResult:
    """Run a preset, recording it in the ledger unless it is a dry run.

    A ledger that cannot be opened does not block the run.
    """
    engine = PresetEngine(
        create_default_registry(), step_timeout=config.scheduler.step_timeout
    )
    if options.dry_run:
        return await engine.run(preset, options)

    ledger = RunLedger(database_path=config.database_path)
    try:
        await ledger.open()
    except LedgerError as e:
        warning(f"Run history unavailable: {e}")
        return await engine.run(preset, options)

    try:
        run_logger = RunLogger(
            ledger, preset.name, schedule_id=schedule_id, trigger_type=trigger_type
        )
        return await engine.run(preset, options, run_logger)
    finally:
        await ledger.close()
