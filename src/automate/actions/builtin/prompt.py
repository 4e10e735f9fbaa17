"""Interactive prompt action."""

import asyncio
from typing import Any

from rich.prompt import Prompt

from automate.actions.base import ActionContext, ActionHandler, ActionOutcome


class PromptAction(ActionHandler):
    """Ask the user for a value on the terminal.

    Params:
        message: Question to show (default: "Enter value").
        default: Value used when the answer is empty.

    Only runs for steps marked `interactive`; scheduled runs have no
    terminal and would block forever.
    """

    @property
    def name(self) -> str:
        return "prompt"

    @property
    def description(self) -> str:
        return "Ask the user for a value"

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        if not context.interactive:
            return ActionOutcome.fail(
                'prompt steps must set "interactive": true'
            )
        message = str(params.get("message") or "Enter value")
        default = params.get("default")

        try:
            answer = await asyncio.to_thread(
                Prompt.ask,
                message,
                default=str(default) if default is not None else None,
            )
        except (EOFError, KeyboardInterrupt):
            return ActionOutcome.fail("User cancelled")
        return ActionOutcome.ok(answer)

    def describe(self, params: dict[str, Any]) -> str:
        return f"prompt: {params.get('message', '')}"
