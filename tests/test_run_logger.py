"""Tests for RunLogger, the engine-to-ledger bridge."""

import logging

from automate.engine import PresetEngine, RunOptions
from automate.engine.types import RunResult, StepOutcome
from automate.ledger import RunLogger

from tests.conftest import make_preset, make_step


class TestRunLogger:
    async def test_successful_run_is_recorded(self, engine, ledger):
        preset = make_preset(
            [make_step("a", params={"value": {"n": 1}}), make_step("b", name="Second")],
            name="backup",
        )
        run_logger = RunLogger(ledger, preset.name)

        result = await engine.run(preset, run_logger=run_logger)

        run = await ledger.get_run(run_logger.run_id)
        logs = await ledger.get_run_logs(run_logger.run_id)
        assert result.success is True
        assert run.preset_name == "backup"
        assert run.trigger_type == "manual"
        assert run.status == "success"
        assert run.step_count == 2
        assert run.error is None
        assert [(log.step_index, log.step_id, log.status) for log in logs] == [
            (0, "a", "success"),
            (1, "b", "success"),
        ]
        assert logs[0].output == '{"n": 1}'
        assert logs[1].step_name == "Second"
        assert logs[1].action == "mock"

    async def test_failed_run_keeps_first_error(self, engine, ledger):
        preset = make_preset([make_step("a"), make_step("b", "fail"), make_step("c")])
        run_logger = RunLogger(ledger, preset.name)

        await engine.run(preset, run_logger=run_logger)

        run = await ledger.get_run(run_logger.run_id)
        logs = await ledger.get_run_logs(run_logger.run_id)
        assert run.status == "error"
        assert run.error == "it broke"
        assert run.step_count == 2
        assert logs[-1].error == "it broke"

    async def test_schedule_trigger(self, engine, ledger):
        schedule = await ledger.create_schedule("hourly", "test-preset", "hourly", next_run_at=None)
        run_logger = RunLogger(
            ledger, "test-preset", schedule_id=schedule.id, trigger_type="schedule"
        )

        await engine.run(make_preset([make_step("a")]), run_logger=run_logger)

        run = await ledger.get_run(run_logger.run_id)
        assert run.trigger_type == "schedule"
        assert run.schedule_name == "hourly"

    async def test_dry_run_writes_nothing(self, engine, ledger):
        run_logger = RunLogger(ledger, "test-preset")

        await engine.run(
            make_preset([make_step("a")]), RunOptions(dry_run=True), run_logger=run_logger
        )

        assert run_logger.run_id is None
        assert await ledger.list_runs() == []

    async def test_events_without_run_are_dropped(self, ledger, caplog):
        run_logger = RunLogger(ledger, "orphan")
        outcome = StepOutcome(id="a", name="A", action="mock", status="success")

        with caplog.at_level(logging.WARNING):
            await run_logger.on_step_complete(0, outcome)
            await run_logger.on_run_end(RunResult(preset="orphan", success=True))

        messages = [r.message for r in caplog.records]
        assert "run_log_dropped" in messages
        assert "run_end_dropped" in messages
        assert await ledger.list_runs() == []

    async def test_closed_ledger_does_not_fail_run(self, registry, ledger, caplog):
        await ledger.close()
        run_logger = RunLogger(ledger, "test-preset")

        with caplog.at_level(logging.WARNING):
            result = await PresetEngine(registry).run(
                make_preset([make_step("a")]), run_logger=run_logger
            )

        assert result.success is True
        assert any(r.message == "run_logger_write_failed" for r in caplog.records)
        assert any(r.message == "run_log_dropped" for r in caplog.records)
