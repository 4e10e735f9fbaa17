"""Action registry for mapping step action names to handlers."""

import logging
from collections.abc import Iterator

from automate.actions.base import ActionHandler

logger = logging.getLogger(__name__)


class ActionRegistry:
    """Registry for action handler instances.

    The engine receives a registry rather than importing handlers, so new
    action kinds plug in without touching engine code.
    """

    def __init__(self) -> None:
        self._actions: dict[str, ActionHandler] = {}

    def register(self, action: ActionHandler) -> None:
        if action.name in self._actions:
            raise ValueError(f"Action '{action.name}' already registered")
        self._actions[action.name] = action
        logger.debug(f"Registered action: {action.name}")

    def unregister(self, name: str) -> None:
        self._actions.pop(name, None)

    def get(self, name: str) -> ActionHandler:
        if name not in self._actions:
            raise KeyError(f"Action '{name}' not found")
        return self._actions[name]

    def has(self, name: str) -> bool:
        return name in self._actions

    @property
    def names(self) -> list[str]:
        return sorted(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, name: str) -> bool:
        return name in self._actions

    def __iter__(self) -> Iterator[ActionHandler]:
        return iter(self._actions.values())
