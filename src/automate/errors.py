"""Exception hierarchy for preset loading, execution and scheduling.

LoadError and ConfigurationError surface to callers before any step runs.
StepError never escapes the engine: it is converted into a step outcome.
"""

from __future__ import annotations

from collections.abc import Sequence


class AutomateError(Exception):
    """Base class for all automate errors."""


class LoadError(AutomateError):
    """A preset could not be loaded."""


class PresetNotFoundError(LoadError):
    def __init__(self, name: str, searched: Sequence[str] = ()) -> None:
        self.name = name
        self.searched = list(searched)
        message = f'Preset "{name}" not found'
        if self.searched:
            message += ". Searched:\n" + "\n".join(f"  - {p}" for p in self.searched)
        super().__init__(message)


class SchemaValidationError(LoadError):
    """Preset failed structural or step-graph validation."""

    def __init__(self, errors: Sequence[str], source: str | None = None) -> None:
        self.errors = list(errors)
        self.source = source
        header = "Preset validation failed"
        if source:
            header += f" ({source})"
        super().__init__(header + ":\n" + "\n".join(f"  - {e}" for e in self.errors))


class ConfigurationError(AutomateError):
    """Run cannot start with the given inputs."""


class MissingVariableError(ConfigurationError):
    def __init__(self, names: Sequence[str]) -> None:
        self.names = list(names)
        joined = ", ".join(self.names)
        super().__init__(f"Missing required variable(s): {joined}")


class InvalidIntervalError(ConfigurationError):
    def __init__(self, text: str, reason: str | None = None) -> None:
        self.text = text
        message = f'Invalid interval: "{text}"'
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class StepError(AutomateError):
    """Raised inside a single step; converted into that step's outcome."""


class ExpressionError(StepError):
    """Template interpolation or condition evaluation failed."""


class LedgerError(AutomateError):
    """The run ledger is not usable."""
