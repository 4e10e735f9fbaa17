"""Shared test fixtures and factories."""

import json
import logging
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import pytest

from automate.actions.base import ActionContext, ActionHandler, ActionOutcome
from automate.actions.builtin import LogAction, SetAction
from automate.actions.registry import ActionRegistry
from automate.config.paths import get_automate_home
from automate.engine import (
    ExpressionContext,
    PresetEngine,
    evaluate_expression,
    resolve_params,
)
from automate.ledger import RunLedger
from automate.presets import Preset, PresetStorage, validate_preset

# =============================================================================
# Preset Factories
# =============================================================================


def make_step(step_id: str, action: str = "mock", **fields: Any) -> dict[str, Any]:
    """Build a raw step document."""
    return {"id": step_id, "name": fields.pop("name", step_id.title()), "action": action, **fields}


def make_preset(
    steps: list[dict[str, Any]],
    name: str = "test-preset",
    vars: dict[str, Any] | None = None,
    **fields: Any,
) -> Preset:
    """Build a validated Preset from raw step documents."""
    raw: dict[str, Any] = {"name": name, "steps": steps, **fields}
    if vars is not None:
        raw["vars"] = vars
    return validate_preset(raw)


# =============================================================================
# Action Fixtures and Mocks
# =============================================================================


class MockAction(ActionHandler):
    """Records every call and returns a configurable outcome."""

    def __init__(
        self,
        name: str = "mock",
        outcome: ActionOutcome | None = None,
    ):
        self._name = name
        self._outcome = outcome
        self.calls: list[tuple[dict[str, Any], ActionContext]] = []

    @property
    def name(self) -> str:
        return self._name

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        self.calls.append((params, context))
        if self._outcome is not None:
            return self._outcome
        return ActionOutcome.ok(params.get("value", f"ran {context.step_id}"))

    @property
    def step_ids(self) -> list[str]:
        return [context.step_id for _, context in self.calls]


def make_action_context(step_id: str = "step", **variables: Any) -> ActionContext:
    """ActionContext with working evaluate/render hooks over `variables`."""

    def scoped(scope: Any) -> ExpressionContext:
        return ExpressionContext(variables={**variables, **scope}, env={})

    return ActionContext(
        step_id=step_id,
        evaluate=lambda expression, scope: evaluate_expression(expression, scoped(scope)),
        render=lambda template, scope: resolve_params(template, scoped(scope)),
    )


class RaisingAction(ActionHandler):
    @property
    def name(self) -> str:
        return "boom"

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        raise RuntimeError("kaboom")


@pytest.fixture
def mock_action() -> MockAction:
    return MockAction()


@pytest.fixture
def failing_action() -> MockAction:
    return MockAction(name="fail", outcome=ActionOutcome.fail("it broke", exit_code=2))


@pytest.fixture
def registry(mock_action: MockAction, failing_action: MockAction) -> ActionRegistry:
    """Registry with mock, fail, boom, log and set actions."""
    registry = ActionRegistry()
    registry.register(mock_action)
    registry.register(failing_action)
    registry.register(RaisingAction())
    registry.register(LogAction())
    registry.register(SetAction())
    return registry


@pytest.fixture
def engine(registry: ActionRegistry) -> PresetEngine:
    return PresetEngine(registry)


# =============================================================================
# Run Event Recording
# =============================================================================


class RecordingSink:
    """Run event sink that records every call."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    async def on_run_start(self, preset: Any) -> None:
        self.events.append(("start", preset.name))

    async def on_step_complete(self, index: int, outcome: Any) -> None:
        self.events.append(("step", (index, outcome.id, outcome.status)))

    async def on_run_end(self, result: Any) -> None:
        self.events.append(("end", result.success))


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


# =============================================================================
# Ledger and Storage Fixtures
# =============================================================================


@pytest.fixture
async def ledger(tmp_path: Path) -> AsyncGenerator[RunLedger, None]:
    """Open a temporary run ledger."""
    ledger = RunLedger(database_path=tmp_path / "ledger.db")
    await ledger.open()
    yield ledger
    await ledger.close()


@pytest.fixture
def presets_dir(tmp_path: Path) -> Path:
    path = tmp_path / "presets"
    path.mkdir()
    return path


@pytest.fixture
def storage(presets_dir: Path) -> PresetStorage:
    return PresetStorage(presets_dir)


@pytest.fixture
def write_preset(presets_dir: Path) -> Callable[..., Path]:
    """Write a raw preset document to <presets_dir>/<file_name>."""

    def _write(document: Any, file_name: str | None = None) -> Path:
        if file_name is None:
            file_name = f"{document['name']}.json"
        path = presets_dir / file_name
        text = document if isinstance(document, str) else json.dumps(document)
        path.write_text(text)
        return path

    return _write


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def automate_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point AUTOMATE_HOME at a temp directory with no config overrides."""
    home = tmp_path / "home"
    (home / "presets").mkdir(parents=True)
    monkeypatch.setenv("AUTOMATE_HOME", str(home))
    monkeypatch.setenv("AUTOMATE_TIMEZONE", "UTC")
    for var in ("AUTOMATE_PRESETS_DIR", "AUTOMATE_DATABASE_PATH", "AUTOMATE_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    get_automate_home.cache_clear()
    yield home
    get_automate_home.cache_clear()


@pytest.fixture
def restore_logging():
    """Undo root logger changes made by configure_logging()."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def cli_runner(restore_logging, monkeypatch: pytest.MonkeyPatch):
    """Create a CLI test runner with a wide console."""
    from typer.testing import CliRunner

    from automate.cli.console import console

    monkeypatch.setattr(console, "width", 200)
    return CliRunner()
