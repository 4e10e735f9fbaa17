"""Preset execution engine.

Steps run one at a time. Control flow is a small state machine over the
step ids with a single "next step id" register:

- after an ``if`` step, jump to ``then`` (true) or ``else`` (false), or
  fall through when that target is absent
- the branch target not taken is bypassed: fall-through never lands on it
  unless a later jump names it explicitly
- every other step falls through to the next non-bypassed step
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, NamedTuple

from automate.actions.base import ActionContext, ActionHandler, ActionOutcome
from automate.actions.registry import ActionRegistry
from automate.engine.expressions import (
    ExpressionContext,
    evaluate_condition,
    evaluate_expression,
    resolve_params,
    stringify,
)
from automate.engine.types import RunEventSink, RunOptions, RunResult, StepOutcome
from automate.errors import ConfigurationError, ExpressionError, MissingVariableError
from automate.presets.types import IF_ACTION, Preset, PresetStep, PresetVariable

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEP_EXECUTIONS = 1000


class _Branch(NamedTuple):
    target: str | None
    not_taken: str | None


_TRUE_WORDS = frozenset({"true", "1", "yes", "y", "on"})
_FALSE_WORDS = frozenset({"false", "0", "no", "n", "off"})


def next_step_id(
    current_id: str,
    jump_target: str | None,
    ordered_ids: Sequence[str],
    bypassed: Iterable[str] = (),
) -> str | None:
    """Return the id of the step to run after `current_id`, or None when done."""
    if jump_target is not None:
        return jump_target
    skip = set(bypassed)
    index = ordered_ids.index(current_id) + 1
    while index < len(ordered_ids) and ordered_ids[index] in skip:
        index += 1
    return ordered_ids[index] if index < len(ordered_ids) else None


def parse_var_overrides(entries: Iterable[str]) -> dict[str, str]:
    """Parse "key=value" overrides, ignoring malformed entries."""
    overrides: dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        key = key.strip()
        if not sep or not key:
            logger.warning("var_override_ignored", extra={"var.entry": entry})
            continue
        overrides[key] = value
    return overrides


def coerce_variable(name: str, definition: PresetVariable, value: Any) -> Any:
    """Convert a variable value to its declared type."""
    if value is None:
        return None
    if definition.type == "number":
        if isinstance(value, bool):
            raise ConfigurationError(f'Variable "{name}" expects a number, got {value!r}')
        if isinstance(value, int | float):
            return value
        text = str(value).strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            raise ConfigurationError(
                f'Variable "{name}" expects a number, got "{value}"'
            ) from None
    if definition.type == "boolean":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_WORDS:
            return True
        if text in _FALSE_WORDS:
            return False
        raise ConfigurationError(f'Variable "{name}" expects a boolean, got "{value}"')
    return stringify(value) if not isinstance(value, str) else value


def build_variables(preset: Preset, overrides: Iterable[str] = ()) -> dict[str, Any]:
    """Resolve the variable context for a run.

    Defaults, then runtime overrides, then type coercion. Raises
    MissingVariableError when a required variable ends up without a value.
    """
    values: dict[str, Any] = {
        name: definition.default
        for name, definition in preset.vars.items()
        if definition.default is not None
    }
    values.update(parse_var_overrides(overrides))

    missing = [
        name
        for name, definition in preset.vars.items()
        if definition.is_required and (values.get(name) is None or values.get(name) == "")
    ]
    if missing:
        raise MissingVariableError(missing)

    for name, definition in preset.vars.items():
        if name in values:
            values[name] = coerce_variable(name, definition, values[name])
    return values


class PresetEngine:
    """Runs presets against an action registry."""

    def __init__(
        self,
        registry: ActionRegistry,
        *,
        step_timeout: float | None = None,
        max_step_executions: int = DEFAULT_MAX_STEP_EXECUTIONS,
    ) -> None:
        self._registry = registry
        self._step_timeout = step_timeout
        self._max_step_executions = max_step_executions

    @property
    def registry(self) -> ActionRegistry:
        return self._registry

    async def run(
        self,
        preset: Preset,
        options: RunOptions | None = None,
        run_logger: RunEventSink | None = None,
    ) -> RunResult:
        """Execute a preset.

        Variable problems raise before any step runs and before the run
        logger hears about the run. Everything that happens inside a step
        becomes part of the returned RunResult.
        """
        options = options or RunOptions()
        variables = build_variables(preset, options.vars)
        # Dry runs never reach the ledger
        sink = None if options.dry_run else run_logger

        context = ExpressionContext(variables=variables)
        outcomes: list[StepOutcome] = []
        started = time.monotonic()

        logger.info(
            "preset_run_started",
            extra={"preset.name": preset.name, "run.dry_run": options.dry_run},
        )
        await self._notify(sink, "on_run_start", preset)

        try:
            run_error = await self._walk(preset, context, options, sink, outcomes)
        except asyncio.CancelledError:
            result = RunResult(
                preset=preset.name,
                success=False,
                steps=outcomes,
                total_duration=_elapsed_ms(started),
                error="run cancelled",
            )
            logger.warning("preset_run_cancelled", extra={"preset.name": preset.name})
            await self._notify(sink, "on_run_end", result)
            raise

        success = run_error is None and all(o.status != "error" for o in outcomes)
        result = RunResult(
            preset=preset.name,
            success=success,
            steps=outcomes,
            total_duration=_elapsed_ms(started),
            error=run_error,
        )
        log_extra = {
            "preset.name": preset.name,
            "run.step_count": len(outcomes),
            "duration_ms": result.total_duration,
        }
        if success:
            logger.info("preset_run_completed", extra=log_extra)
        else:
            log_extra["error.message"] = result.first_error
            logger.warning("preset_run_failed", extra=log_extra)
        await self._notify(sink, "on_run_end", result)
        return result

    async def _walk(
        self,
        preset: Preset,
        context: ExpressionContext,
        options: RunOptions,
        sink: RunEventSink | None,
        outcomes: list[StepOutcome],
    ) -> str | None:
        """Drive the step state machine. Returns a run-level error, if any."""
        steps = {step.id: step for step in preset.steps}
        ordered_ids = [step.id for step in preset.steps]
        bypassed: set[str] = set()
        current: str | None = ordered_ids[0]
        executions = 0

        while current is not None:
            executions += 1
            if executions > self._max_step_executions:
                return (
                    f"Exceeded {self._max_step_executions} step executions; "
                    "check for a conditional loop"
                )

            step = steps[current]
            outcome, branch = await self._run_step(step, context, options)
            outcomes.append(outcome)
            context.steps[step.id] = {
                "status": outcome.status,
                "output": outcome.output,
                "error": outcome.error,
                "exit_code": outcome.exit_code,
            }
            if outcome.status == "success" and step.output:
                context.outputs[step.output] = outcome.output

            if options.verbose or outcome.status == "error":
                logger.info(
                    "step_completed",
                    extra={
                        "step.id": step.id,
                        "step.action": step.action,
                        "step.status": outcome.status,
                        "duration_ms": outcome.duration_ms,
                    },
                )
            await self._notify(sink, "on_step_complete", len(outcomes) - 1, outcome)

            if outcome.status == "error" and step.on_error == "stop":
                return None

            jump = None
            if branch is not None:
                jump = branch.target
                if jump is not None:
                    bypassed.discard(jump)
                if branch.not_taken and branch.not_taken != jump:
                    bypassed.add(branch.not_taken)
            current = next_step_id(step.id, jump, ordered_ids, bypassed)
        return None

    async def _run_step(
        self,
        step: PresetStep,
        context: ExpressionContext,
        options: RunOptions,
    ) -> tuple[StepOutcome, _Branch | None]:
        """Run one step. Returns its outcome and, for `if` steps, the branch taken."""
        started = time.monotonic()

        def finish(
            status: str,
            output: Any = None,
            error: str | None = None,
            exit_code: int | None = None,
        ) -> StepOutcome:
            if status == "error" and step.on_error == "skip":
                status = "skipped"
            return StepOutcome(
                id=step.id,
                name=step.name,
                action=step.action,
                status=status,  # type: ignore[arg-type]
                output=output,
                duration_ms=_elapsed_ms(started),
                error=error,
                exit_code=exit_code,
            )

        if step.is_conditional:
            assert step.condition is not None
            try:
                taken = evaluate_condition(step.condition, context)
            except ExpressionError as e:
                if options.dry_run:
                    # Values set by earlier steps do not exist yet; assume the then branch
                    note = f"[dry-run] could not evaluate {step.condition!r} ({e}); assuming then"
                    return finish("skipped", note), _Branch(step.then, step.else_)
                return finish("error", error=f"Condition failed: {e}"), None
            branch = _Branch(*((step.then, step.else_) if taken else (step.else_, step.then)))
            if options.dry_run:
                target = branch.target or "next step"
                return finish("skipped", f"[dry-run] would branch to {target}"), branch
            return finish("success", taken), branch

        if options.dry_run:
            return finish("skipped", f"[dry-run] would run {self._describe(step, context)}"), None

        if step.condition:
            try:
                if not evaluate_condition(step.condition, context):
                    return finish("skipped"), None
            except ExpressionError as e:
                return finish("error", error=f"Condition failed: {e}"), None

        try:
            handler = self._registry.get(step.action)
        except KeyError:
            return finish("error", error=f"Unknown action: {step.action}"), None

        try:
            params = _resolve_step_params(handler, step.params, context)
        except ExpressionError as e:
            return finish("error", error=str(e)), None

        action_context = self._action_context(step, context)
        try:
            outcome: ActionOutcome = await asyncio.wait_for(
                handler.execute(params, action_context),
                timeout=self._step_timeout,
            )
        except TimeoutError:
            return finish("error", error=f"Step timed out after {self._step_timeout:g}s"), None
        except Exception as e:
            logger.exception(
                "step_execution_failed",
                extra={"step.id": step.id, "step.action": step.action},
            )
            return finish("error", error=f"{type(e).__name__}: {e}"), None

        if not outcome.success:
            return (
                finish("error", outcome.output, outcome.error or "Step failed", outcome.exit_code),
                None,
            )
        context.variables.update(outcome.variables)
        return finish("success", outcome.output, exit_code=outcome.exit_code), None

    def _describe(self, step: PresetStep, context: ExpressionContext) -> str:
        if step.action not in self._registry:
            return step.action
        handler = self._registry.get(step.action)
        try:
            params = _resolve_step_params(handler, step.params, context)
        except ExpressionError:
            params = step.params
        return handler.describe(params)

    def _action_context(self, step: PresetStep, context: ExpressionContext) -> ActionContext:
        async def run_step(body: Mapping[str, Any], scope: Mapping[str, Any]) -> ActionOutcome:
            scoped = _scoped(context, scope)
            return await self._run_nested(step, body, scoped, context)

        return ActionContext(
            step_id=step.id,
            interactive=step.interactive,
            timeout=self._step_timeout,
            on_error=step.on_error,
            evaluate=lambda expression, scope: _evaluate(expression, _scoped(context, scope)),
            render=lambda template, scope: resolve_params(template, _scoped(context, scope)),
            run_step=run_step,
        )

    async def _run_nested(
        self,
        step: PresetStep,
        body: Mapping[str, Any],
        scoped: ExpressionContext,
        context: ExpressionContext,
    ) -> ActionOutcome:
        """Run a step nested inside a loop action, such as a forEach body."""
        action = body.get("action") if isinstance(body, Mapping) else None
        if not isinstance(action, str) or not action:
            return ActionOutcome.fail("Nested step is missing an action")
        if action == IF_ACTION:
            return ActionOutcome.fail('"if" cannot be used as a nested step')
        if action not in self._registry:
            return ActionOutcome.fail(f"Unknown action: {action}")
        params = body.get("params") or {}
        if not isinstance(params, Mapping):
            return ActionOutcome.fail("Nested step params must be an object")

        handler = self._registry.get(action)
        try:
            resolved = _resolve_step_params(handler, params, scoped)
        except ExpressionError as e:
            return ActionOutcome.fail(str(e))
        try:
            outcome = await handler.execute(resolved, self._action_context(step, scoped))
        except Exception as e:
            logger.exception(
                "nested_step_failed", extra={"step.id": step.id, "step.action": action}
            )
            return ActionOutcome.fail(f"{type(e).__name__}: {e}")
        if outcome.success:
            context.variables.update(outcome.variables)
        return outcome

    async def _notify(self, sink: RunEventSink | None, event: str, *args: Any) -> None:
        if sink is None:
            return
        try:
            await getattr(sink, event)(*args)
        except Exception:
            logger.warning("run_logger_write_failed", extra={"run.event": event}, exc_info=True)


async def run_preset(
    preset: Preset,
    options: RunOptions | None = None,
    run_logger: RunEventSink | None = None,
    *,
    registry: ActionRegistry | None = None,
    step_timeout: float | None = None,
) -> RunResult:
    """Run a preset with the built-in actions (or the given registry)."""
    from automate.actions.builtin import create_default_registry

    engine = PresetEngine(registry or create_default_registry(), step_timeout=step_timeout)
    return await engine.run(preset, options, run_logger)


def _scoped(context: ExpressionContext, scope: Mapping[str, Any]) -> ExpressionContext:
    if not scope:
        return context
    return ExpressionContext(
        variables={**context.variables, **scope},
        steps=context.steps,
        outputs=context.outputs,
        env=context.env,
    )


def _evaluate(expression: Any, context: ExpressionContext) -> Any:
    if not isinstance(expression, str):
        return expression
    return evaluate_expression(expression, context)


def _resolve_step_params(
    handler: ActionHandler, params: Mapping[str, Any], context: ExpressionContext
) -> dict[str, Any]:
    return {
        key: value if key in handler.raw_params else resolve_params(value, context)
        for key, value in params.items()
    }


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
