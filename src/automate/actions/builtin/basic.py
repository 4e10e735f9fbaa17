"""Actions that only touch the run itself: log and set."""

import logging
from typing import Any

from automate.actions.base import ActionContext, ActionHandler, ActionOutcome

logger = logging.getLogger(__name__)


class LogAction(ActionHandler):
    """Emit a message to the run log.

    Params:
        message: Text to log (templates already resolved).
        level: debug | info | warning | error (default: info).
    """

    @property
    def name(self) -> str:
        return "log"

    @property
    def description(self) -> str:
        return "Write a message to the log"

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        message = str(params.get("message", ""))
        level = str(params.get("level", "info")).lower()
        log_level = logging.getLevelName(level.upper())
        if not isinstance(log_level, int):
            return ActionOutcome.fail(f"Unknown log level: {level}")
        logger.log(log_level, message, extra={"step.id": context.step_id})
        return ActionOutcome.ok(message)

    def describe(self, params: dict[str, Any]) -> str:
        return f"log: {params.get('message', '')}"


class SetAction(ActionHandler):
    """Assign run variables from params.

    Every scalar param becomes a variable visible to later steps, e.g.
    {"action": "set", "params": {"target": "prod"}} makes ${target} resolve.
    """

    @property
    def name(self) -> str:
        return "set"

    @property
    def description(self) -> str:
        return "Set run variables"

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        variables = {
            key: value
            for key, value in params.items()
            if isinstance(value, str | int | float | bool)
        }
        ignored = sorted(set(params) - set(variables))
        if ignored:
            logger.debug(
                "set_ignored_non_scalar",
                extra={"step.id": context.step_id, "keys": ignored},
            )
        return ActionOutcome.ok(variables, variables=variables)

    def describe(self, params: dict[str, Any]) -> str:
        return "set: " + ", ".join(sorted(params))
