"""Loop actions: forEach and while.

Both run a nested step ({"action": ..., "params": ...}) through the engine,
so the body sees the run's variables and step outputs plus the loop names.
Nested `if` steps are not allowed; branching happens between top-level steps.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from automate.actions.base import ActionContext, ActionHandler, ActionOutcome
from automate.actions.builtin.transform import resolve_input
from automate.engine.expressions import is_truthy
from automate.errors import ExpressionError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100


def _body(params: dict[str, Any]) -> Mapping[str, Any] | None:
    step = params.get("step")
    if isinstance(step, Mapping) and step.get("action"):
        return step
    return None


class ForEachAction(ActionHandler):
    """Run a nested step once per item.

    Params:
        items: A list, or a reference to one such as "steps.list.output.files".
        step: The nested step. `item` and `index` are in scope, e.g.
            {"action": "log", "params": {"message": "${index}: ${item.name}"}}.
        as, indexAs: Names for the item and index (default: item, index).
        concurrency: Items run at once (default: 1, in order).

    Output is {"results": [...], "count": n, "failures": n}. Every item runs
    even after a failure; the step fails if any iteration did.
    """

    raw_params = frozenset({"step"})

    @property
    def name(self) -> str:
        return "forEach"

    @property
    def description(self) -> str:
        return "Run a step for each item in a list"

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        items = resolve_input(params.get("items"), context)
        if not isinstance(items, list):
            return ActionOutcome.fail(
                f"forEach items did not resolve to a list: {params.get('items')!r}"
            )
        body = _body(params)
        if body is None:
            return ActionOutcome.fail("forEach needs a step with an action")

        item_name = str(params.get("as") or "item")
        index_name = str(params.get("indexAs") or "index")
        concurrency = max(1, int(params.get("concurrency") or 1))

        async def run(index: int, item: Any) -> ActionOutcome:
            return await context.run_nested(body, **{item_name: item, index_name: index})

        outcomes: list[ActionOutcome] = []
        for start in range(0, len(items), concurrency):
            batch = items[start : start + concurrency]
            outcomes.extend(
                await asyncio.gather(
                    *(run(start + offset, item) for offset, item in enumerate(batch))
                )
            )

        failures = sum(1 for outcome in outcomes if not outcome.success)
        output = {
            "results": [outcome.output for outcome in outcomes],
            "count": len(items),
            "failures": failures,
        }
        if failures:
            for index, outcome in enumerate(outcomes):
                if not outcome.success:
                    logger.debug(
                        "foreach_iteration_failed",
                        extra={
                            "step.id": context.step_id,
                            "iteration": index,
                            "error.message": outcome.error,
                        },
                    )
            return ActionOutcome.fail(f"{failures}/{len(items)} iterations failed", output=output)
        return ActionOutcome.ok(output)

    def describe(self, params: dict[str, Any]) -> str:
        body = _body(params)
        action = body["action"] if body else "?"
        return f"forEach {params.get('items', '')}: {action}"


class WhileAction(ActionHandler):
    """Run a nested step while a condition holds.

    Params:
        condition: Checked before each iteration; `iteration` (from 0) is in scope.
        step: The nested step; `iteration` is in scope here too.
        maxIterations: Upper bound (default: 100). Reaching it fails the step.

    A failed iteration ends the loop unless the step's onError is
    "continue". Output is {"results": [...], "iterations": n, "failures": n}.
    """

    raw_params = frozenset({"condition", "step"})

    @property
    def name(self) -> str:
        return "while"

    @property
    def description(self) -> str:
        return "Repeat a step while a condition holds"

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        condition = params.get("condition")
        if condition in (None, ""):
            return ActionOutcome.fail("Missing required parameter: condition")
        body = _body(params)
        if body is None:
            return ActionOutcome.fail("while needs a step with an action")
        max_iterations = int(params.get("maxIterations") or DEFAULT_MAX_ITERATIONS)

        outcomes: list[ActionOutcome] = []
        iteration = 0

        def output() -> dict[str, Any]:
            return {
                "results": [outcome.output for outcome in outcomes],
                "iterations": iteration,
                "failures": sum(1 for outcome in outcomes if not outcome.success),
            }

        while iteration < max_iterations:
            try:
                if not is_truthy(context.evaluate_in(condition, iteration=iteration)):
                    break
            except ExpressionError as e:
                return ActionOutcome.fail(f"Condition failed: {e}", output=output())

            outcome = await context.run_nested(body, iteration=iteration)
            outcomes.append(outcome)
            iteration += 1
            if not outcome.success and context.on_error != "continue":
                break
        else:
            return ActionOutcome.fail(f"Hit max iterations ({max_iterations})", output=output())

        result = output()
        if result["failures"]:
            return ActionOutcome.fail(f"{result['failures']} iterations failed", output=result)
        return ActionOutcome.ok(result)

    def describe(self, params: dict[str, Any]) -> str:
        body = _body(params)
        action = body["action"] if body else "?"
        return f"while {params.get('condition', '')}: {action}"
