"""Preset documents: models, validation and storage.

Public API:
- PresetStorage: Load/list/save preset JSON files
- validate_preset / validate_step_graph / check_preset: Validation

Types:
- Preset, PresetStep, PresetVariable, PresetTrigger, PresetSummary
"""

from automate.presets.schema import check_preset, validate_preset, validate_step_graph
from automate.presets.storage import PresetStorage, preset_file_name
from automate.presets.types import (
    Preset,
    PresetStep,
    PresetSummary,
    PresetTrigger,
    PresetVariable,
)

__all__ = [
    "Preset",
    "PresetStep",
    "PresetStorage",
    "PresetSummary",
    "PresetTrigger",
    "PresetVariable",
    "check_preset",
    "preset_file_name",
    "validate_preset",
    "validate_step_graph",
]
