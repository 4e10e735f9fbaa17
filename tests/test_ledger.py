"""Tests for the run ledger."""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from automate.errors import LedgerError
from automate.ledger import MAX_LOG_OUTPUT_BYTES, RunLedger
from automate.ledger.store import serialize_output

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=UTC)


class TestLifecycle:
    async def test_session_requires_open(self, tmp_path):
        ledger = RunLedger(database_path=tmp_path / "ledger.db")

        with pytest.raises(LedgerError):
            await ledger.list_schedules()

    async def test_context_manager_creates_file(self, tmp_path):
        path = tmp_path / "nested" / "ledger.db"

        async with RunLedger(database_path=path) as ledger:
            assert ledger.is_open
            assert await ledger.list_schedules() == []

        assert path.exists()
        assert not ledger.is_open

    def test_requires_location(self):
        with pytest.raises(ValueError):
            RunLedger()

    async def test_reopen_keeps_data(self, tmp_path):
        path = tmp_path / "ledger.db"
        async with RunLedger(database_path=path) as ledger:
            await ledger.create_schedule("nightly", "backup", "daily", next_run_at=NOW)

        async with RunLedger(database_path=path) as ledger:
            schedule = await ledger.get_schedule("nightly")

        assert schedule is not None
        assert schedule.preset_name == "backup"


class TestSchedules:
    async def test_create_and_get(self, ledger):
        created = await ledger.create_schedule(
            "nightly",
            "backup",
            "daily at 02:00",
            next_run_at=NOW,
            vars={"target": "s3"},
        )

        fetched = await ledger.get_schedule("nightly")

        assert fetched is not None
        assert fetched.id == created.id
        assert fetched.enabled is True
        assert fetched.last_run_at is None
        assert fetched.vars == {"target": "s3"}
        assert fetched.var_overrides == ["target=s3"]
        assert await ledger.get_schedule_by_id(created.id) == fetched

    async def test_datetimes_round_trip_as_utc(self, ledger):
        offset = datetime(2026, 3, 10, 14, 0, tzinfo=UTC).astimezone(ZoneInfo("Europe/Berlin"))
        await ledger.create_schedule("a", "p", "hourly", next_run_at=offset)

        schedule = await ledger.get_schedule("a")

        assert schedule.next_run_at == datetime(2026, 3, 10, 14, 0, tzinfo=UTC)
        assert schedule.next_run_at.tzinfo is not None
        assert schedule.created_at.tzinfo is not None

    async def test_duplicate_name(self, ledger):
        await ledger.create_schedule("nightly", "backup", "daily", next_run_at=NOW)

        with pytest.raises(LedgerError, match="already exists"):
            await ledger.create_schedule("nightly", "other", "hourly", next_run_at=NOW)

    async def test_missing(self, ledger):
        assert await ledger.get_schedule("nope") is None
        assert await ledger.get_schedule_by_id(999) is None

    async def test_list_sorted_by_name(self, ledger):
        for name in ("zeta", "alpha", "mid"):
            await ledger.create_schedule(name, "p", "hourly", next_run_at=NOW)

        assert [s.name for s in await ledger.list_schedules()] == ["alpha", "mid", "zeta"]

    async def test_due_schedules(self, ledger):
        await ledger.create_schedule("past", "p", "hourly", next_run_at=NOW - timedelta(minutes=5))
        await ledger.create_schedule("exact", "p", "hourly", next_run_at=NOW)
        await ledger.create_schedule("future", "p", "hourly", next_run_at=NOW + timedelta(seconds=1))
        await ledger.create_schedule(
            "disabled", "p", "hourly", next_run_at=NOW - timedelta(hours=1), enabled=False
        )
        await ledger.create_schedule("unscheduled", "p", "hourly", next_run_at=None)

        due = await ledger.get_due_schedules(NOW)

        assert [s.name for s in due] == ["past", "exact"]

    async def test_enable_disable(self, ledger):
        await ledger.create_schedule("nightly", "backup", "daily", next_run_at=NOW)

        assert await ledger.set_schedule_enabled("nightly", False) is True
        assert (await ledger.get_schedule("nightly")).enabled is False

        later = NOW + timedelta(days=1)
        assert await ledger.set_schedule_enabled("nightly", True, next_run_at=later) is True
        schedule = await ledger.get_schedule("nightly")
        assert schedule.enabled is True
        assert schedule.next_run_at == later

        assert await ledger.set_schedule_enabled("missing", True) is False

    async def test_update_after_run(self, ledger):
        schedule = await ledger.create_schedule("s", "p", "hourly", next_run_at=NOW)

        await ledger.update_schedule_after_run(
            schedule.id, last_run_at=NOW, next_run_at=NOW + timedelta(hours=1)
        )

        updated = await ledger.get_schedule("s")
        assert updated.last_run_at == NOW
        assert updated.next_run_at == NOW + timedelta(hours=1)

    async def test_delete_keeps_runs(self, ledger):
        schedule = await ledger.create_schedule("s", "p", "hourly", next_run_at=NOW)
        run_id = await ledger.start_run("p", "schedule", schedule_id=schedule.id)

        assert await ledger.delete_schedule("s") is True
        assert await ledger.delete_schedule("s") is False

        run = await ledger.get_run(run_id)
        assert run is not None
        assert run.schedule_id is None
        assert run.schedule_name is None


class TestRuns:
    async def test_run_lifecycle(self, ledger):
        run_id = await ledger.start_run("backup", "manual", started_at=NOW)

        await ledger.log_step(
            run_id, 0, step_id="a", step_name="A", action="shell", status="success",
            duration_ms=12, output={"files": 3},
        )
        await ledger.log_step(
            run_id, 1, step_id="b", step_name="B", action="shell", status="error",
            error="exit 1",
        )
        await ledger.finish_run(run_id, "error", step_count=2, duration_ms=40, error="exit 1")

        run = await ledger.get_run(run_id)
        logs = await ledger.get_run_logs(run_id)

        assert run.status == "error"
        assert run.started_at == NOW
        assert run.step_count == 2
        assert run.duration_ms == 40
        assert run.error == "exit 1"
        assert [log.step_id for log in logs] == ["a", "b"]
        assert logs[0].output == '{"files": 3}'
        assert logs[1].output is None
        assert logs[1].error == "exit 1"

    async def test_new_run_is_running(self, ledger):
        run_id = await ledger.start_run("backup", "manual")

        run = await ledger.get_run(run_id)

        assert run.status == "running"
        assert run.duration_ms is None

    async def test_record_failed_run(self, ledger):
        schedule = await ledger.create_schedule("s", "gone", "hourly", next_run_at=NOW)

        run_id = await ledger.record_failed_run(
            "gone", "schedule", 'Preset "gone" not found', schedule_id=schedule.id
        )

        run = await ledger.get_run(run_id)
        assert run.status == "error"
        assert run.step_count == 0
        assert run.schedule_name == "s"
        assert await ledger.get_run_logs(run_id) == []

    async def test_list_runs_newest_first(self, ledger):
        schedule = await ledger.create_schedule("s", "p", "hourly", next_run_at=NOW)
        first = await ledger.start_run("p", "manual", started_at=NOW)
        second = await ledger.start_run(
            "p", "schedule", schedule_id=schedule.id, started_at=NOW + timedelta(minutes=1)
        )
        third = await ledger.start_run("q", "manual", started_at=NOW + timedelta(minutes=2))

        runs = await ledger.list_runs()

        assert [r.id for r in runs] == [third, second, first]
        assert runs[1].schedule_name == "s"
        assert [r.id for r in await ledger.list_runs(limit=1)] == [third]
        assert [r.id for r in await ledger.list_runs(schedule_id=schedule.id)] == [second]

    async def test_get_missing_run(self, ledger):
        assert await ledger.get_run(42) is None
        assert await ledger.get_run_logs(42) == []

    async def test_recover_stale_runs(self, ledger):
        stale = await ledger.start_run("p", "schedule", started_at=NOW - timedelta(hours=2))
        fresh = await ledger.start_run("p", "schedule", started_at=NOW)
        done = await ledger.start_run("p", "manual", started_at=NOW - timedelta(hours=3))
        await ledger.finish_run(done, "success", step_count=1, duration_ms=5)

        count = await ledger.recover_stale_runs(NOW - timedelta(hours=1))

        assert count == 1
        assert (await ledger.get_run(stale)).status == "error"
        assert (await ledger.get_run(stale)).error == "Run interrupted (process exited)"
        assert (await ledger.get_run(fresh)).status == "running"
        assert (await ledger.get_run(done)).status == "success"


class TestSerializeOutput:
    def test_values(self):
        assert serialize_output(None) is None
        assert serialize_output("text") == "text"
        assert serialize_output({"a": [1, 2]}) == '{"a": [1, 2]}'
        assert serialize_output(True) == "true"

    def test_truncates_large_output(self):
        text = serialize_output("x" * (MAX_LOG_OUTPUT_BYTES + 100))

        assert text.endswith("...[truncated]")
        assert text.startswith("x" * 100)
        assert len(text) < MAX_LOG_OUTPUT_BYTES + 100
