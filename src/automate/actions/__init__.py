"""Step actions: the handlers behind a step's `action` name."""

from automate.actions.base import ActionContext, ActionHandler, ActionOutcome
from automate.actions.builtin import create_default_registry
from automate.actions.registry import ActionRegistry

__all__ = [
    "ActionContext",
    "ActionHandler",
    "ActionOutcome",
    "ActionRegistry",
    "create_default_registry",
]
