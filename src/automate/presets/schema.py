"""Preset validation.

Structural checks live on the pydantic models; step-graph checks need the
whole document (every step id) and run separately. Loading a preset means
running both and failing on any message.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from automate.errors import SchemaValidationError
from automate.presets.types import Preset, PresetStep


def _format_location(loc: tuple[int | str, ...]) -> str:
    parts: list[str] = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        elif parts:
            parts.append(f".{item}")
        else:
            parts.append(str(item))
    return "".join(parts) or "preset"


def format_validation_errors(error: ValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into "<field>: <message>" lines."""
    messages = []
    for detail in error.errors():
        location = _format_location(detail.get("loc", ()))
        message = detail.get("msg", "invalid value")
        # pydantic prefixes model_validator messages with "Value error, "
        message = message.removeprefix("Value error, ")
        messages.append(f"{location}: {message}")
    return messages


def validate_preset(raw: Any, *, source: str | None = None) -> Preset:
    """Validate the structure of a raw preset document.

    Raises:
        SchemaValidationError: With one message per offending field.
    """
    if not isinstance(raw, dict):
        raise SchemaValidationError(
            [f"preset: expected a JSON object, got {type(raw).__name__}"],
            source=source,
        )
    try:
        return Preset.model_validate(raw)
    except ValidationError as e:
        raise SchemaValidationError(format_validation_errors(e), source=source) from e


def validate_step_graph(steps: Sequence[PresetStep]) -> list[str]:
    """Check step-graph integrity.

    Returns messages for duplicate step ids and for `if` steps whose
    then/else targets do not exist. Order follows the steps; calling it
    twice on the same steps yields the same list.
    """
    errors: list[str] = []
    seen: set[str] = set()
    ids = {step.id for step in steps}

    for index, step in enumerate(steps):
        if step.id in seen:
            errors.append(f'steps[{index}]: duplicate step id "{step.id}"')
        seen.add(step.id)

        if not step.is_conditional:
            continue
        for field, target in (("then", step.then), ("else", step.else_)):
            if target is not None and target not in ids:
                errors.append(
                    f'steps[{index}] ("{step.id}"): {field} target "{target}" '
                    "does not match any step id"
                )

    return errors


def check_preset(raw: Any, *, source: str | None = None) -> Preset:
    """Run structural and graph validation, raising on any error."""
    preset = validate_preset(raw, source=source)
    graph_errors = validate_step_graph(preset.steps)
    if graph_errors:
        raise SchemaValidationError(graph_errors, source=source)
    return preset
