"""Bridges engine run events into ledger rows."""

import logging

from automate.engine.types import RunResult, StepOutcome, TriggerType
from automate.ledger.store import RunLedger
from automate.presets.types import Preset

logger = logging.getLogger(__name__)


class RunLogger:
    """Writes one Run row per invocation and one RunLog row per step.

    Write failures propagate to the engine, which logs and ignores them.
    If the Run row could not be created, later events are dropped.
    """

    def __init__(
        self,
        ledger: RunLedger,
        preset_name: str,
        schedule_id: int | None = None,
        trigger_type: TriggerType = "manual",
    ) -> None:
        self._ledger = ledger
        self._preset_name = preset_name
        self._schedule_id = schedule_id
        self._trigger_type = trigger_type
        self._run_id: int | None = None

    @property
    def run_id(self) -> int | None:
        return self._run_id

    async def on_run_start(self, preset: Preset) -> None:
        self._run_id = await self._ledger.start_run(
            preset_name=self._preset_name or preset.name,
            trigger_type=self._trigger_type,
            schedule_id=self._schedule_id,
        )

    async def on_step_complete(self, index: int, outcome: StepOutcome) -> None:
        if self._run_id is None:
            logger.warning(
                "run_log_dropped",
                extra={"preset.name": self._preset_name, "step.id": outcome.id},
            )
            return
        await self._ledger.log_step(
            self._run_id,
            index,
            step_id=outcome.id,
            step_name=outcome.name,
            action=outcome.action,
            status=outcome.status,
            duration_ms=outcome.duration_ms,
            output=outcome.output,
            error=outcome.error,
        )

    async def on_run_end(self, result: RunResult) -> None:
        if self._run_id is None:
            logger.warning("run_end_dropped", extra={"preset.name": self._preset_name})
            return
        await self._ledger.finish_run(
            self._run_id,
            "success" if result.success else "error",
            step_count=len(result.steps),
            duration_ms=result.total_duration,
            error=None if result.success else result.first_error,
        )
