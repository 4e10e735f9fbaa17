"""Durable run ledger (schedules, runs, step logs)."""

from automate.ledger.models import Base, Run, RunLog, Schedule, UTCDateTime
from automate.ledger.run_logger import RunLogger
from automate.ledger.store import (
    MAX_LOG_OUTPUT_BYTES,
    RunLedger,
    RunLogRecord,
    RunRecord,
    ScheduleRecord,
)

__all__ = [
    "MAX_LOG_OUTPUT_BYTES",
    "Base",
    "Run",
    "RunLedger",
    "RunLog",
    "RunLogRecord",
    "RunLogger",
    "RunRecord",
    "Schedule",
    "ScheduleRecord",
    "UTCDateTime",
]
