"""Preset execution."""

from automate.engine.engine import (
    PresetEngine,
    build_variables,
    next_step_id,
    parse_var_overrides,
    run_preset,
)
from automate.engine.expressions import (
    ExpressionContext,
    evaluate_condition,
    evaluate_expression,
    interpolate,
    resolve_params,
)
from automate.engine.types import (
    RunEventSink,
    RunOptions,
    RunResult,
    StepOutcome,
)

__all__ = [
    "ExpressionContext",
    "PresetEngine",
    "RunEventSink",
    "RunOptions",
    "RunResult",
    "StepOutcome",
    "build_variables",
    "evaluate_condition",
    "evaluate_expression",
    "interpolate",
    "next_step_id",
    "parse_var_overrides",
    "resolve_params",
    "run_preset",
]
