"""Scheduler loop: polls the ledger and runs due schedules.

The loop owns polling and dispatch. Schedule data lives in the RunLedger;
presets come from PresetStorage and run through the same PresetEngine as
manual runs.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from automate.actions import create_default_registry
from automate.config.models import AutomateConfig
from automate.engine import PresetEngine, RunOptions
from automate.errors import ConfigurationError, InvalidIntervalError, LoadError
from automate.ledger import RunLedger, RunLogger, ScheduleRecord
from automate.ledger.models import utc_now
from automate.presets import PresetStorage
from automate.scheduling.interval import compute_next_run_at, parse_interval

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class SchedulerLoop:
    """Runs due schedules until stopped.

    Distinct due schedules run as independent tasks (or one after another
    with ``concurrent=False``). A schedule is never dispatched while a
    previous run of it is still in flight.

    Example:
        loop = SchedulerLoop(ledger, storage, engine, timezone="Europe/Berlin")
        await loop.start()
        ...
        await loop.stop()
    """

    def __init__(
        self,
        ledger: RunLedger,
        storage: PresetStorage,
        engine: PresetEngine,
        *,
        poll_interval: float = 30.0,
        timezone: str = "UTC",
        stale_run_after: float = 3600.0,
        shutdown_grace: float = 30.0,
        concurrent: bool = True,
        clock: Clock = utc_now,
    ):
        self._ledger = ledger
        self._storage = storage
        self._engine = engine
        self._poll_interval = poll_interval
        self._timezone = timezone
        self._stale_run_after = stale_run_after
        self._shutdown_grace = shutdown_grace
        self._concurrent = concurrent
        self._clock = clock
        self._in_flight: set[int] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        self._running = False
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._poll_count = 0

    @property
    def in_flight(self) -> frozenset[int]:
        """Ids of schedules with a run in progress."""
        return frozenset(self._in_flight)

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._stop_event.clear()
        cutoff = self._clock() - timedelta(seconds=self._stale_run_after)
        await self._ledger.recover_stale_runs(cutoff)
        logger.info(
            "scheduler_started",
            extra={
                "scheduler.poll_interval": self._poll_interval,
                "scheduler.timezone": self._timezone,
            },
        )
        self._task = asyncio.create_task(self._poll_loop())

    def request_stop(self) -> None:
        """Ask the loop to finish; safe to call from a signal handler."""
        self._running = False
        self._stop_event.set()

    async def stop(self) -> None:
        if self._task is None:
            return
        self.request_stop()
        try:
            await self._task
        finally:
            self._task = None
        logger.info("scheduler_stopped")

    async def run_forever(self) -> None:
        """Start and block until stopped."""
        await self.start()
        if self._task is not None:
            await self._task

    async def _poll_loop(self) -> None:
        # Heartbeat every 60 polls
        heartbeat_interval = 60
        try:
            while self._running:
                self._poll_count += 1
                if self._poll_count % heartbeat_interval == 0:
                    logger.info(
                        "scheduler_heartbeat",
                        extra={
                            "poll.count": self._poll_count,
                            "scheduler.in_flight": len(self._in_flight),
                        },
                    )
                try:
                    await self.check_due()
                except Exception as e:
                    logger.error(
                        "scheduler_poll_failed",
                        extra={"error.message": str(e)},
                        exc_info=True,
                    )
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self._poll_interval
                    )
                except TimeoutError:
                    pass
        finally:
            await self._drain()

    async def check_due(self) -> list[int]:
        """Run one poll iteration. Returns the ids of dispatched schedules."""
        now = self._clock()
        due = await self._ledger.get_due_schedules(now)
        dispatched: list[int] = []
        for schedule in due:
            if schedule.id in self._in_flight:
                logger.debug(
                    "schedule_still_running",
                    extra={"schedule.name": schedule.name, "schedule.id": schedule.id},
                )
                continue
            self._in_flight.add(schedule.id)
            dispatched.append(schedule.id)
            if self._concurrent:
                task = asyncio.create_task(
                    self._dispatch(schedule, now), name=f"schedule:{schedule.name}"
                )
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
            else:
                await self._dispatch(schedule, now)
        return dispatched

    async def _dispatch(self, schedule: ScheduleRecord, dispatched_at: datetime) -> None:
        try:
            await self._execute(schedule)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(
                "schedule_run_failed",
                extra={"schedule.name": schedule.name, "error.message": str(e)},
            )
            await self._record_failure(schedule, f"Scheduler error: {e}")
        finally:
            try:
                await self._reschedule(schedule, dispatched_at)
            finally:
                self._in_flight.discard(schedule.id)

    async def _execute(self, schedule: ScheduleRecord) -> None:
        logger.info(
            "schedule_triggered",
            extra={"schedule.name": schedule.name, "preset.name": schedule.preset_name},
        )
        try:
            preset = self._storage.load_preset(schedule.preset_name)
        except LoadError as e:
            logger.error(
                "schedule_preset_load_failed",
                extra={"schedule.name": schedule.name, "error.message": str(e)},
            )
            await self._record_failure(schedule, str(e))
            return

        run_logger = RunLogger(
            self._ledger,
            preset.name,
            schedule_id=schedule.id,
            trigger_type="schedule",
        )
        try:
            result = await self._engine.run(
                preset, RunOptions(vars=schedule.var_overrides), run_logger
            )
        except ConfigurationError as e:
            await self._record_failure(schedule, str(e))
            return

        logger.info(
            "schedule_run_completed",
            extra={
                "schedule.name": schedule.name,
                "run.success": result.success,
                "duration_ms": result.total_duration,
            },
        )

    async def _record_failure(self, schedule: ScheduleRecord, error: str) -> None:
        try:
            await self._ledger.record_failed_run(
                schedule.preset_name,
                "schedule",
                error,
                schedule_id=schedule.id,
            )
        except Exception:
            logger.warning(
                "run_logger_write_failed",
                extra={"schedule.name": schedule.name},
                exc_info=True,
            )

    async def _reschedule(self, schedule: ScheduleRecord, dispatched_at: datetime) -> None:
        try:
            descriptor = parse_interval(schedule.interval)
        except InvalidIntervalError as e:
            logger.error(
                "schedule_disabled_invalid_interval",
                extra={"schedule.name": schedule.name, "error.message": str(e)},
            )
            descriptor = None
        try:
            if descriptor is None:
                await self._ledger.set_schedule_enabled(schedule.name, False)
                return
            next_run_at = compute_next_run_at(
                descriptor, dispatched_at, timezone=self._timezone
            )
            await self._ledger.update_schedule_after_run(
                schedule.id, last_run_at=dispatched_at, next_run_at=next_run_at
            )
        except Exception:
            logger.exception(
                "schedule_update_failed", extra={"schedule.name": schedule.name}
            )

    async def _drain(self) -> None:
        """Give in-flight runs the grace period, then cancel them."""
        if not self._tasks:
            return
        pending = set(self._tasks)
        logger.info("scheduler_draining", extra={"scheduler.in_flight": len(pending)})
        _, still_running = await asyncio.wait(pending, timeout=self._shutdown_grace)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)


def create_scheduler_loop(
    ledger: RunLedger,
    config: AutomateConfig | None = None,
    *,
    storage: PresetStorage | None = None,
    engine: PresetEngine | None = None,
) -> SchedulerLoop:
    """Build a SchedulerLoop from configuration."""
    config = config or AutomateConfig()
    storage = storage or PresetStorage(config.presets_dir)
    engine = engine or PresetEngine(
        create_default_registry(), step_timeout=config.scheduler.step_timeout
    )
    return SchedulerLoop(
        ledger,
        storage,
        engine,
        poll_interval=config.scheduler.poll_interval,
        timezone=config.timezone,
        stale_run_after=config.scheduler.stale_run_after,
        shutdown_grace=config.scheduler.shutdown_grace,
        concurrent=config.scheduler.concurrent,
    )


async def run_scheduler_loop(
    ledger: RunLedger,
    config: AutomateConfig | None = None,
    *,
    storage: PresetStorage | None = None,
    engine: PresetEngine | None = None,
) -> None:
    """Daemon body: sweep stale runs, then poll until stopped or cancelled."""
    loop = create_scheduler_loop(ledger, config, storage=storage, engine=engine)
    try:
        await loop.run_forever()
    finally:
        await loop.stop()
