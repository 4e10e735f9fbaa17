"""Preset document models.

Preset files use camelCase and reserved words as keys (onError, else,
$schema); those are read through field aliases.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

OnError = Literal["stop", "continue", "skip"]
VariableType = Literal["string", "number", "boolean"]

STEP_ID_PATTERN = r"^[a-zA-Z0-9_-]+$"
PRESET_SCHEMA_ID = "automate/preset/v1"

# Action names handled by the engine itself rather than the action registry
IF_ACTION = "if"


class PresetVariable(BaseModel):
    """Variable definition in a preset."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: VariableType = "string"
    description: str = ""
    default: str | int | float | bool | None = None
    # Unset means required; only an explicit false makes a variable optional
    required: bool | None = None

    @property
    def is_required(self) -> bool:
        return self.required is not False


class PresetTrigger(BaseModel):
    """Trigger configuration. Only manual invocation exists today."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["manual"] = "manual"


class PresetStep(BaseModel):
    """A single step in a preset. Immutable once loaded."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    id: str = Field(pattern=STEP_ID_PATTERN)
    name: str = Field(min_length=1)
    action: str = Field(min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)
    output: str | None = None
    on_error: OnError = Field(default="stop", alias="onError")
    interactive: bool = False
    condition: str | None = None
    then: str | None = None
    else_: str | None = Field(default=None, alias="else")

    @property
    def is_conditional(self) -> bool:
        return self.action == IF_ACTION

    @model_validator(mode="after")
    def _check_if_step(self) -> PresetStep:
        if self.is_conditional and not (self.condition and self.condition.strip()):
            raise ValueError('"if" steps require a "condition"')
        return self


class Preset(BaseModel):
    """The full preset document."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    schema_: str = Field(default=PRESET_SCHEMA_ID, alias="$schema")
    name: str = Field(min_length=1)
    description: str | None = None
    trigger: PresetTrigger = Field(default_factory=PresetTrigger)
    vars: dict[str, PresetVariable] = Field(default_factory=dict)
    steps: list[PresetStep] = Field(min_length=1)

    def get_step(self, step_id: str) -> PresetStep | None:
        return next((s for s in self.steps if s.id == step_id), None)

    def to_document(self) -> dict[str, Any]:
        """Serialize back to the JSON file shape."""
        return self.model_dump(by_alias=True, exclude_none=True)


class PresetSummary(BaseModel):
    """Listing entry for a preset file."""

    name: str
    file_name: str
    description: str | None = None
    step_count: int = 0
