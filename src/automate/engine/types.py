"""Types for preset execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from automate.presets.types import Preset

StepStatus = Literal["success", "error", "skipped"]
RunStatus = Literal["running", "success", "error"]
TriggerType = Literal["manual", "schedule"]


@dataclass
class RunOptions:
    """Per-invocation options for a preset run."""

    dry_run: bool = False
    # Runtime overrides as "key=value" strings
    vars: list[str] = field(default_factory=list)
    verbose: bool = False


@dataclass
class StepOutcome:
    """Result of one step attempt."""

    id: str
    name: str
    action: str
    status: StepStatus
    output: Any = None
    duration_ms: int = 0
    error: str | None = None
    exit_code: int | None = None


@dataclass
class RunResult:
    """Aggregate result of a preset run."""

    preset: str
    success: bool
    steps: list[StepOutcome] = field(default_factory=list)
    # Milliseconds
    total_duration: int = 0
    # Run-level failure not tied to a single step (aborts, cancellation)
    error: str | None = None

    @property
    def first_error(self) -> str | None:
        if self.error:
            return self.error
        return next((s.error for s in self.steps if s.status == "error"), None)


class RunEventSink(Protocol):
    """Receives run events from the engine.

    Implementations must tolerate being told about a run that ends
    without any steps. Exceptions raised here are logged and ignored.
    """

    async def on_run_start(self, preset: Preset) -> None: ...

    async def on_step_complete(self, index: int, outcome: StepOutcome) -> None: ...

    async def on_run_end(self, result: RunResult) -> None: ...
