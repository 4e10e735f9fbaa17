"""Built-in actions.

- LogAction ("log"): Write a message to the log
- SetAction ("set"): Assign run variables
- ShellAction ("shell"): Run a bash command
- PromptAction ("prompt"): Ask on the terminal (interactive steps only)
- HttpAction ("http", "http-get"): Send HTTP requests
- FileAction ("file.read", "file.write", ...): File system operations
- JsonAction, TextAction, ArrayAction ("json.*", "text.*", "array.*"): Reshape data
- ForEachAction ("forEach"), WhileAction ("while"): Run a nested step repeatedly
"""

from automate.actions.builtin.basic import LogAction, SetAction
from automate.actions.builtin.file import FILE_OPERATIONS, FileAction
from automate.actions.builtin.http import HttpAction
from automate.actions.builtin.loop import ForEachAction, WhileAction
from automate.actions.builtin.prompt import PromptAction
from automate.actions.builtin.shell import ShellAction
from automate.actions.builtin.transform import (
    ARRAY_OPERATIONS,
    JSON_OPERATIONS,
    TEXT_OPERATIONS,
    ArrayAction,
    JsonAction,
    TextAction,
)
from automate.actions.registry import ActionRegistry


def create_default_registry() -> ActionRegistry:
    """Registry with every built-in action."""
    registry = ActionRegistry()
    registry.register(LogAction())
    registry.register(SetAction())
    registry.register(ShellAction())
    registry.register(PromptAction())
    registry.register(HttpAction())
    registry.register(HttpAction(name="http-get", method="GET"))
    for operation in FILE_OPERATIONS:
        registry.register(FileAction(operation))
    for operation in JSON_OPERATIONS:
        registry.register(JsonAction(operation))
    for operation in TEXT_OPERATIONS:
        registry.register(TextAction(operation))
    for operation in ARRAY_OPERATIONS:
        registry.register(ArrayAction(operation))
    registry.register(ForEachAction())
    registry.register(WhileAction())
    return registry


__all__ = [
    "ArrayAction",
    "FileAction",
    "ForEachAction",
    "HttpAction",
    "JsonAction",
    "LogAction",
    "PromptAction",
    "SetAction",
    "ShellAction",
    "TextAction",
    "WhileAction",
    "create_default_registry",
]
