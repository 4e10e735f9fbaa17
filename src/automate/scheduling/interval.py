"""Human-readable recurrence intervals.

parse_interval() turns text such as "every 5 minutes", "daily at 9am" or
"cron 0 8 * * 1-5" into a RecurrenceDescriptor; compute_next_run_at()
derives the next fire time from a descriptor and a reference time. Both
are pure: the scheduler recomputes next_run_at from the last dispatch on
every firing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from automate.errors import InvalidIntervalError

logger = logging.getLogger(__name__)

RecurrenceKind = Literal["periodic", "daily", "weekly", "cron"]

_UNIT_SECONDS = {
    "s": 1,
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hr": 3600,
    "hrs": 3600,
    "hour": 3600,
    "hours": 3600,
    "d": 86400,
    "day": 86400,
    "days": 86400,
    "w": 604800,
    "week": 604800,
    "weeks": 604800,
}

_WEEKDAYS = {
    "monday": 0,
    "mon": 0,
    "tuesday": 1,
    "tue": 1,
    "tues": 1,
    "wednesday": 2,
    "wed": 2,
    "thursday": 3,
    "thu": 3,
    "thurs": 3,
    "friday": 4,
    "fri": 4,
    "saturday": 5,
    "sat": 5,
    "sunday": 6,
    "sun": 6,
}

_WEEKDAY_NAMES = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]

_UNIT = "|".join(sorted(_UNIT_SECONDS, key=len, reverse=True))
_DAY = "|".join(sorted(_WEEKDAYS, key=len, reverse=True))
_TIME = r"(?P<time>\d{1,2}(?::\d{2})?\s*(?:am|pm)?)"

_EVERY_N = re.compile(rf"^every\s+(?P<n>\d+)\s*(?P<unit>{_UNIT})$")
_EVERY_UNIT = re.compile(rf"^every\s+(?P<unit>{_UNIT})$")
_SHORTHAND = re.compile(rf"^(?P<n>\d+)\s*(?P<unit>{_UNIT})$")
_DAILY_AT = re.compile(rf"^(?:daily\s+at|every\s+day\s+at|at)\s+{_TIME}$")
_WEEKLY_AT = re.compile(
    rf"^(?:every|weekly\s+on)\s+(?P<day>{_DAY})\s+at\s+{_TIME}$"
)
_CRON = re.compile(r"^cron\s*:?\s+(?P<expr>.+)$")
_CLOCK = re.compile(r"^(?P<h>\d{1,2})(?::(?P<m>\d{2}))?\s*(?P<ampm>am|pm)?$")


@dataclass(frozen=True)
class RecurrenceDescriptor:
    """Structured form of an interval string."""

    kind: RecurrenceKind
    source: str
    period: timedelta | None = None
    at: time | None = None
    weekday: int | None = None
    cron: str | None = None


def _parse_clock(text: str, source: str) -> time:
    match = _CLOCK.match(text.strip())
    if not match:
        raise InvalidIntervalError(source, f"unrecognized time {text!r}")
    hour = int(match.group("h"))
    minute = int(match.group("m") or 0)
    ampm = match.group("ampm")
    if ampm:
        if not 1 <= hour <= 12:
            raise InvalidIntervalError(source, f"hour {hour} is not valid with {ampm}")
        hour = hour % 12 + (12 if ampm == "pm" else 0)
    if hour > 23 or minute > 59:
        raise InvalidIntervalError(source, f"time {text!r} is out of range")
    return time(hour, minute)


def _periodic(n: int, unit: str, source: str) -> RecurrenceDescriptor:
    if n <= 0:
        raise InvalidIntervalError(source, "interval must be positive")
    return RecurrenceDescriptor(
        kind="periodic",
        source=source,
        period=timedelta(seconds=n * _UNIT_SECONDS[unit]),
    )


def parse_interval(text: str) -> RecurrenceDescriptor:
    """Parse a recurrence expression.

    Supported forms:
        every 5 minutes / every 2h / every hour / 30s / hourly / daily
        daily at 09:00 / every day at 9:30pm / at 7am
        every monday at 9am / weekly on fri at 17:00
        cron 0 8 * * 1-5

    Raises:
        InvalidIntervalError: If the text matches none of the forms.
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidIntervalError(str(text), "interval is empty")

    source = text.strip()
    normalized = re.sub(r"\s+", " ", source.lower())

    if match := _CRON.match(normalized):
        expr = source.split(None, 1)[1].lstrip(":").strip()
        from croniter import croniter

        if not croniter.is_valid(expr):
            raise InvalidIntervalError(source, "invalid cron expression")
        return RecurrenceDescriptor(kind="cron", source=source, cron=expr)

    if normalized == "hourly":
        return _periodic(1, "hour", source)
    if normalized == "daily":
        return _periodic(1, "day", source)
    if normalized == "weekly":
        return _periodic(1, "week", source)

    if match := _EVERY_N.match(normalized) or _SHORTHAND.match(normalized):
        return _periodic(int(match.group("n")), match.group("unit"), source)

    if match := _EVERY_UNIT.match(normalized):
        return _periodic(1, match.group("unit"), source)

    if match := _DAILY_AT.match(normalized):
        return RecurrenceDescriptor(
            kind="daily",
            source=source,
            at=_parse_clock(match.group("time"), source),
        )

    if match := _WEEKLY_AT.match(normalized):
        return RecurrenceDescriptor(
            kind="weekly",
            source=source,
            at=_parse_clock(match.group("time"), source),
            weekday=_WEEKDAYS[match.group("day")],
        )

    raise InvalidIntervalError(source)


def _zone(timezone: str) -> ZoneInfo:
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("invalid_timezone", extra={"schedule.timezone": timezone})
        return ZoneInfo("UTC")


def compute_next_run_at(
    descriptor: RecurrenceDescriptor,
    from_time: datetime | None = None,
    *,
    timezone: str = "UTC",
) -> datetime:
    """Compute the next fire time strictly after ``from_time``.

    Args:
        descriptor: Parsed interval.
        from_time: Reference time; defaults to now. Naive values are UTC.
        timezone: IANA zone used for wall-clock and cron forms.

    Returns:
        Timezone-aware UTC datetime.
    """
    if from_time is None:
        from_time = datetime.now(UTC)
    elif from_time.tzinfo is None:
        from_time = from_time.replace(tzinfo=UTC)

    if descriptor.kind == "periodic":
        assert descriptor.period is not None
        return (from_time + descriptor.period).astimezone(UTC)

    tz = _zone(timezone)
    local = from_time.astimezone(tz)

    if descriptor.kind == "cron":
        from croniter import croniter

        return croniter(descriptor.cron, local).get_next(datetime).astimezone(UTC)

    assert descriptor.at is not None
    day = local.date()
    if descriptor.kind == "weekly":
        assert descriptor.weekday is not None
        day += timedelta(days=(descriptor.weekday - day.weekday()) % 7)
    step = timedelta(days=7 if descriptor.kind == "weekly" else 1)

    candidate = datetime.combine(day, descriptor.at, tzinfo=tz)
    while candidate <= local:
        day += step
        candidate = datetime.combine(day, descriptor.at, tzinfo=tz)
    return candidate.astimezone(UTC)


def describe_interval(descriptor: RecurrenceDescriptor) -> str:
    """Human-readable label for listings."""
    if descriptor.kind == "periodic":
        assert descriptor.period is not None
        seconds = int(descriptor.period.total_seconds())
        for unit, size in (("week", 604800), ("day", 86400), ("hour", 3600), ("minute", 60)):
            if seconds % size == 0:
                count = seconds // size
                return f"every {unit}" if count == 1 else f"every {count} {unit}s"
        return f"every {seconds} seconds"
    if descriptor.kind == "daily":
        return f"daily at {descriptor.at:%H:%M}"
    if descriptor.kind == "weekly":
        assert descriptor.weekday is not None
        return f"every {_WEEKDAY_NAMES[descriptor.weekday]} at {descriptor.at:%H:%M}"
    return f"cron {descriptor.cron}"
