"""Run ledger: durable schedules, runs and step logs."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import event, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from automate.errors import LedgerError
from automate.ledger.models import Base, Run, RunLog, Schedule, utc_now

logger = logging.getLogger(__name__)

# Per-step output kept in run_logs
MAX_LOG_OUTPUT_BYTES = 64 * 1024


@dataclass(frozen=True)
class ScheduleRecord:
    id: int
    name: str
    preset_name: str
    interval: str
    enabled: bool
    last_run_at: datetime | None
    next_run_at: datetime | None
    vars_json: str | None
    created_at: datetime

    @property
    def vars(self) -> dict[str, str]:
        if not self.vars_json:
            return {}
        return json.loads(self.vars_json)

    @property
    def var_overrides(self) -> list[str]:
        """Stored variables as "key=value" entries for RunOptions."""
        return [f"{key}={value}" for key, value in self.vars.items()]

    @classmethod
    def from_model(cls, row: Schedule) -> ScheduleRecord:
        return cls(
            id=row.id,
            name=row.name,
            preset_name=row.preset_name,
            interval=row.interval,
            enabled=row.enabled,
            last_run_at=row.last_run_at,
            next_run_at=row.next_run_at,
            vars_json=row.vars_json,
            created_at=row.created_at,
        )


@dataclass(frozen=True)
class RunRecord:
    id: int
    preset_name: str
    trigger_type: str
    schedule_id: int | None
    status: str
    started_at: datetime
    duration_ms: int | None
    step_count: int
    error: str | None
    schedule_name: str | None = None

    @classmethod
    def from_model(cls, row: Run, schedule_name: str | None = None) -> RunRecord:
        return cls(
            id=row.id,
            preset_name=row.preset_name,
            trigger_type=row.trigger_type,
            schedule_id=row.schedule_id,
            status=row.status,
            started_at=row.started_at,
            duration_ms=row.duration_ms,
            step_count=row.step_count,
            error=row.error,
            schedule_name=schedule_name,
        )


@dataclass(frozen=True)
class RunLogRecord:
    id: int
    run_id: int
    step_index: int
    step_id: str | None
    step_name: str
    action: str
    status: str
    duration_ms: int
    output: str | None
    error: str | None

    @classmethod
    def from_model(cls, row: RunLog) -> RunLogRecord:
        return cls(
            id=row.id,
            run_id=row.run_id,
            step_index=row.step_index,
            step_id=row.step_id,
            step_name=row.step_name,
            action=row.action,
            status=row.status,
            duration_ms=row.duration_ms,
            output=row.output,
            error=row.error,
        )


def serialize_output(output: Any) -> str | None:
    """Render a step output for storage, truncated to MAX_LOG_OUTPUT_BYTES."""
    if output is None:
        return None
    if isinstance(output, str):
        text = output
    else:
        try:
            text = json.dumps(output, default=str)
        except (TypeError, ValueError):
            text = str(output)
    encoded = text.encode("utf-8")
    if len(encoded) <= MAX_LOG_OUTPUT_BYTES:
        return text
    return encoded[:MAX_LOG_OUTPUT_BYTES].decode("utf-8", errors="ignore") + "\n...[truncated]"


def _set_sqlite_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class RunLedger:
    """Handle to the ledger database.

    Open it explicitly (or use ``async with``) and pass it to whatever
    needs it. Each write method commits its own transaction.
    """

    def __init__(
        self, database_path: Path | None = None, database_url: str | None = None
    ):
        self._path: Path | None = None
        if database_url:
            self._url = database_url
        elif database_path:
            self._path = database_path
            self._url = f"sqlite+aiosqlite:///{database_path}"
        else:
            raise ValueError("Either database_url or database_path must be provided")
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open(self) -> None:
        """Connect and create missing tables."""
        if self._engine is not None:
            return
        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)

        engine = create_async_engine(self._url, echo=False, pool_pre_ping=True)
        if engine.dialect.name == "sqlite":
            event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except Exception as e:
            await engine.dispose()
            raise LedgerError(f"Cannot open ledger at {self._url}: {e}") from e

        self._engine = engine
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        logger.debug("ledger_opened", extra={"db.url": self._url})

    async def close(self) -> None:
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    async def __aenter__(self) -> RunLedger:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on success and rolls back on error."""
        if self._session_factory is None:
            raise LedgerError("Ledger is not open. Call open() first.")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # Schedules

    async def create_schedule(
        self,
        name: str,
        preset_name: str,
        interval: str,
        *,
        next_run_at: datetime | None,
        vars: dict[str, str] | None = None,
        enabled: bool = True,
    ) -> ScheduleRecord:
        row = Schedule(
            name=name,
            preset_name=preset_name,
            interval=interval,
            enabled=enabled,
            next_run_at=next_run_at,
            vars_json=json.dumps(vars) if vars else None,
        )
        try:
            async with self.session() as session:
                session.add(row)
                await session.flush()
                record = ScheduleRecord.from_model(row)
        except IntegrityError as e:
            raise LedgerError(f'Schedule "{name}" already exists') from e
        return record

    async def get_schedule(self, name: str) -> ScheduleRecord | None:
        async with self.session() as session:
            row = await session.scalar(select(Schedule).where(Schedule.name == name))
            return ScheduleRecord.from_model(row) if row else None

    async def get_schedule_by_id(self, schedule_id: int) -> ScheduleRecord | None:
        async with self.session() as session:
            row = await session.get(Schedule, schedule_id)
            return ScheduleRecord.from_model(row) if row else None

    async def list_schedules(self) -> list[ScheduleRecord]:
        async with self.session() as session:
            rows = await session.scalars(select(Schedule).order_by(Schedule.name))
            return [ScheduleRecord.from_model(row) for row in rows]

    async def get_due_schedules(self, now: datetime | None = None) -> list[ScheduleRecord]:
        """Enabled schedules whose next_run_at is at or before `now`."""
        now = now or utc_now()
        stmt = (
            select(Schedule)
            .where(Schedule.enabled.is_(True))
            .where(Schedule.next_run_at.is_not(None))
            .where(Schedule.next_run_at <= now)
            .order_by(Schedule.next_run_at, Schedule.id)
        )
        async with self.session() as session:
            rows = await session.scalars(stmt)
            return [ScheduleRecord.from_model(row) for row in rows]

    async def set_schedule_enabled(
        self, name: str, enabled: bool, next_run_at: datetime | None = None
    ) -> bool:
        """Enable or disable a schedule. Returns False if it does not exist."""
        values: dict[str, Any] = {"enabled": enabled}
        if next_run_at is not None:
            values["next_run_at"] = next_run_at
        async with self.session() as session:
            result = await session.execute(
                update(Schedule).where(Schedule.name == name).values(**values)
            )
            return result.rowcount > 0

    async def update_schedule_after_run(
        self, schedule_id: int, last_run_at: datetime, next_run_at: datetime
    ) -> None:
        async with self.session() as session:
            await session.execute(
                update(Schedule)
                .where(Schedule.id == schedule_id)
                .values(last_run_at=last_run_at, next_run_at=next_run_at)
            )

    async def delete_schedule(self, name: str) -> bool:
        async with self.session() as session:
            row = await session.scalar(select(Schedule).where(Schedule.name == name))
            if row is None:
                return False
            await session.delete(row)
            return True

    # Runs

    async def start_run(
        self,
        preset_name: str,
        trigger_type: str,
        schedule_id: int | None = None,
        started_at: datetime | None = None,
    ) -> int:
        row = Run(
            preset_name=preset_name,
            trigger_type=trigger_type,
            schedule_id=schedule_id,
            status="running",
            started_at=started_at or utc_now(),
        )
        async with self.session() as session:
            session.add(row)
            await session.flush()
            return row.id

    async def log_step(
        self,
        run_id: int,
        step_index: int,
        *,
        step_name: str,
        action: str,
        status: str,
        duration_ms: int = 0,
        step_id: str | None = None,
        output: Any = None,
        error: str | None = None,
    ) -> None:
        row = RunLog(
            run_id=run_id,
            step_index=step_index,
            step_id=step_id,
            step_name=step_name,
            action=action,
            status=status,
            duration_ms=duration_ms,
            output=serialize_output(output),
            error=error,
        )
        async with self.session() as session:
            session.add(row)

    async def finish_run(
        self,
        run_id: int,
        status: str,
        *,
        step_count: int,
        duration_ms: int,
        error: str | None = None,
    ) -> None:
        async with self.session() as session:
            await session.execute(
                update(Run)
                .where(Run.id == run_id)
                .values(
                    status=status,
                    step_count=step_count,
                    duration_ms=duration_ms,
                    error=error,
                )
            )

    async def record_failed_run(
        self,
        preset_name: str,
        trigger_type: str,
        error: str,
        schedule_id: int | None = None,
    ) -> int:
        """Record a run that failed before any step ran."""
        row = Run(
            preset_name=preset_name,
            trigger_type=trigger_type,
            schedule_id=schedule_id,
            status="error",
            started_at=utc_now(),
            duration_ms=0,
            step_count=0,
            error=error,
        )
        async with self.session() as session:
            session.add(row)
            await session.flush()
            return row.id

    async def list_runs(
        self, limit: int = 50, schedule_id: int | None = None
    ) -> list[RunRecord]:
        """Most recent runs first."""
        stmt = (
            select(Run, Schedule.name)
            .outerjoin(Schedule, Run.schedule_id == Schedule.id)
            .order_by(Run.started_at.desc(), Run.id.desc())
            .limit(limit)
        )
        if schedule_id is not None:
            stmt = stmt.where(Run.schedule_id == schedule_id)
        async with self.session() as session:
            result = await session.execute(stmt)
            return [RunRecord.from_model(run, name) for run, name in result.all()]

    async def get_run(self, run_id: int) -> RunRecord | None:
        stmt = (
            select(Run, Schedule.name)
            .outerjoin(Schedule, Run.schedule_id == Schedule.id)
            .where(Run.id == run_id)
        )
        async with self.session() as session:
            row = (await session.execute(stmt)).first()
            return RunRecord.from_model(row[0], row[1]) if row else None

    async def get_run_logs(self, run_id: int) -> list[RunLogRecord]:
        stmt = (
            select(RunLog)
            .where(RunLog.run_id == run_id)
            .order_by(RunLog.step_index, RunLog.id)
        )
        async with self.session() as session:
            rows = await session.scalars(stmt)
            return [RunLogRecord.from_model(row) for row in rows]

    async def recover_stale_runs(self, older_than: datetime) -> int:
        """Mark `running` rows started before `older_than` as errors."""
        async with self.session() as session:
            result = await session.execute(
                update(Run)
                .where(Run.status == "running")
                .where(Run.started_at < older_than)
                .values(status="error", error="Run interrupted (process exited)")
            )
            count = result.rowcount or 0
        if count:
            logger.warning("stale_runs_recovered", extra={"run.count": count})
        return count
