"""Recurrence parsing and the scheduler loop."""

from automate.scheduling.interval import (
    RecurrenceDescriptor,
    compute_next_run_at,
    describe_interval,
    parse_interval,
)
from automate.scheduling.loop import (
    SchedulerLoop,
    create_scheduler_loop,
    run_scheduler_loop,
)

__all__ = [
    "RecurrenceDescriptor",
    "SchedulerLoop",
    "compute_next_run_at",
    "create_scheduler_loop",
    "describe_interval",
    "parse_interval",
    "run_scheduler_loop",
]
