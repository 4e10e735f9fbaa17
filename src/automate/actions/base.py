"""Abstract action interface."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

# (expression or template, extra names in scope) -> value
Evaluator = Callable[[Any, Mapping[str, Any]], Any]
# (nested step {"action": ..., "params": ...}, extra names in scope) -> outcome
StepRunner = Callable[[Mapping[str, Any], Mapping[str, Any]], Awaitable["ActionOutcome"]]


@dataclass
class ActionContext:
    """Context passed to action execution."""

    step_id: str
    dry_run: bool = False
    # Step may read from the terminal (prompts, interactive subprocesses)
    interactive: bool = False
    # Extra environment variables for subprocesses
    env: dict[str, str] = field(default_factory=dict)
    # Seconds; actions with their own I/O deadlines should respect it
    timeout: float | None = None
    # The step's onError policy
    on_error: str = "stop"
    # Set by the engine; None when an action runs outside a preset
    evaluate: Evaluator | None = None
    render: Evaluator | None = None
    run_step: StepRunner | None = None

    def evaluate_in(self, expression: str, **scope: Any) -> Any:
        """Evaluate an expression with `scope` names visible."""
        if self.evaluate is None:
            raise RuntimeError("No expression evaluator in this context")
        return self.evaluate(expression, scope)

    def render_in(self, template: Any, **scope: Any) -> Any:
        """Interpolate a template with `scope` names visible."""
        if self.render is None:
            raise RuntimeError("No template renderer in this context")
        return self.render(template, scope)

    async def run_nested(self, body: Mapping[str, Any], **scope: Any) -> "ActionOutcome":
        """Run a nested {"action": ..., "params": ...} step with `scope` names visible."""
        if self.run_step is None:
            raise RuntimeError("No step runner in this context")
        return await self.run_step(body, scope)


@dataclass
class ActionOutcome:
    """Result from action execution."""

    success: bool
    output: Any = None
    error: str | None = None
    exit_code: int | None = None
    # Values merged into the run's variables after a successful step
    variables: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, output: Any = None, **kwargs: Any) -> "ActionOutcome":
        """Create a successful outcome."""
        return cls(success=True, output=output, **kwargs)

    @classmethod
    def fail(cls, error: str, output: Any = None, **kwargs: Any) -> "ActionOutcome":
        """Create a failed outcome."""
        return cls(success=False, output=output, error=error, **kwargs)


class ActionHandler(ABC):
    """Abstract base class for step actions.

    An action receives its step's params with all templates already
    resolved, except the keys listed in `raw_params`, which arrive as
    written so the action can evaluate them per item or per iteration.
    Failures should be reported as ActionOutcome.fail(); any exception
    raised is also caught by the engine and turned into a failed step.
    """

    raw_params: frozenset[str] = frozenset()

    @property
    @abstractmethod
    def name(self) -> str:
        """Action name as used in a step's `action` field."""
        ...

    @property
    def description(self) -> str:
        return ""

    @abstractmethod
    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        """Run the action."""
        ...

    def describe(self, params: dict[str, Any]) -> str:
        """One-line summary used for dry runs."""
        return self.name
