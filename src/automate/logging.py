"""Centralized logging configuration for automate.

All entry points (CLI commands, the scheduler daemon) call
configure_logging() once, early.

Logging Levels:
- DEBUG: Resolved params, poll details, skipped schedules
- INFO: Run and step completion summaries, schedule dispatch
- WARNING: Recoverable issues, ledger write failures, skipped presets
- ERROR: Failed steps, failed scheduled runs

Messages are snake_case event names; details go in `extra`:

    logger.info("run_finished", extra={"run.id": 3, "duration_ms": 120})
"""

import json
import logging
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import Any, TextIO

DEFAULT_LOG_RETENTION_DAYS = 7

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Group 1, when present, is the secret itself; the rest of the match is kept
DEFAULT_REDACT_PATTERNS: list[str] = [
    r"\b(sk-[A-Za-z0-9_-]{20,})\b",
    r"\b(ghp_[A-Za-z0-9]{20,})\b",
    r"\b(github_pat_[A-Za-z0-9_]{20,})\b",
    r"\b(xox[baprs]-[A-Za-z0-9-]{10,})\b",
    r"\b(AIza[0-9A-Za-z\-_]{20,})\b",
    r"\b(npm_[A-Za-z0-9]{10,})\b",
    r"\b[A-Z0-9_]+(?:KEY|TOKEN|SECRET|PASSWORD|PASSWD)\s*[=:]\s*([^\s\"']{8,})",
    r"\bBearer\s+([A-Za-z0-9._\-+=]{20,})\b",
    r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]+?-----END [A-Z ]*PRIVATE KEY-----",
]

# Third-party loggers that are too noisy at INFO level
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")

# Attributes every LogRecord carries; anything else arrived through `extra`
_RESERVED_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "component"}


def _mask(secret: str) -> str:
    if len(secret) < 12:
        return "***"
    return f"{secret[:4]}...{secret[-4:]}"


@dataclass
class SecretRedactor:
    """Masks credentials in log output.

    Shell steps and HTTP actions routinely echo tokens, so messages,
    exceptions and extra fields all pass through here before they are
    written anywhere.
    """

    patterns: list[re.Pattern[str]] = field(default_factory=list)
    enabled: bool = True

    def __post_init__(self) -> None:
        if not self.patterns:
            self.patterns = compile_patterns(DEFAULT_REDACT_PATTERNS)

    def redact(self, text: str) -> str:
        if not self.enabled or not text:
            return text
        for pattern in self.patterns:
            text = pattern.sub(self._replace, text)
        return text

    @staticmethod
    def _replace(match: re.Match[str]) -> str:
        whole = match.group(0)
        if whole.startswith("-----BEGIN"):
            first, _, rest = whole.partition("\n")
            last = rest.rsplit("\n", 1)[-1]
            return f"{first}\n...redacted...\n{last}"

        if not match.lastindex:
            return _mask(whole)
        secret = match.group(1)
        if "..." in secret:
            return whole
        start, end = match.span(1)
        offset = match.start()
        return whole[: start - offset] + _mask(secret) + whole[end - offset :]


def compile_patterns(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


_redactor = SecretRedactor()


def configure_redaction(
    enabled: bool = True, extra_patterns: list[str] | None = None
) -> None:
    """Replace the process-wide redactor.

    Args:
        enabled: Whether to redact at all.
        extra_patterns: Regexes added to the defaults. Use a capture group
            to mask only part of a match.
    """
    global _redactor
    patterns = compile_patterns([*DEFAULT_REDACT_PATTERNS, *(extra_patterns or [])])
    _redactor = SecretRedactor(patterns=patterns, enabled=enabled)


def prune_old_logs(
    logs_dir: Path,
    retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
    suffix: str = ".jsonl",
) -> int:
    """Delete log files not modified within the retention period.

    Returns:
        Number of files deleted.
    """
    if not logs_dir.is_dir():
        return 0

    cutoff = (datetime.now(UTC) - timedelta(days=retention_days)).timestamp()
    deleted = 0
    for entry in logs_dir.glob(f"*{suffix}"):
        try:
            if entry.is_file() and entry.stat().st_mtime < cutoff:
                entry.unlink()
                deleted += 1
        except OSError as e:
            logging.getLogger(__name__).debug(
                "log_prune_failed", extra={"file.path": str(entry), "error.message": str(e)}
            )
    return deleted


def _component(name: str) -> str:
    """automate.engine.engine -> engine, httpx -> httpx."""
    root, _, rest = name.partition(".")
    if root == "automate" and rest:
        return rest.split(".", 1)[0]
    return root


def record_extra(record: logging.LogRecord) -> dict[str, Any]:
    """Collect the fields passed to a log call through `extra`."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_RECORD_ATTRS and not key.startswith("_")
    }


class JSONLHandler(logging.Handler):
    """Writes one JSON object per record to <logs_dir>/YYYY-MM-DD.jsonl.

    The file rolls over at UTC midnight; old files are pruned on each
    rollover.
    """

    def __init__(
        self,
        logs_dir: Path,
        retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
    ):
        super().__init__()
        logs_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir = logs_dir
        self.retention_days = retention_days
        self._day: date | None = None
        self._stream: TextIO | None = None

    def _open_stream(self) -> TextIO:
        today = datetime.now(UTC).date()
        if self._stream is not None and self._day == today:
            return self._stream
        if self._stream is not None:
            self._stream.close()
        self._day = today
        self._stream = (self.logs_dir / f"{today.isoformat()}.jsonl").open(
            "a", encoding="utf-8"
        )
        prune_old_logs(self.logs_dir, self.retention_days)
        return self._stream

    def _entry(self, record: logging.LogRecord) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "component": _component(record.name),
            "logger": record.name,
            "message": _redactor.redact(record.getMessage()),
        }
        if record.exc_info:
            formatter = self.formatter or logging.Formatter()
            entry["exception"] = _redactor.redact(formatter.formatException(record.exc_info))
        extra = record_extra(record)
        if extra:
            entry["extra"] = {
                key: _redactor.redact(value) if isinstance(value, str) else value
                for key, value in extra.items()
            }
        return entry

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = json.dumps(self._entry(record), default=str)
            stream = self._open_stream()
            stream.write(line + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        self.acquire()
        try:
            if self._stream is not None:
                self._stream.close()
                self._stream = None
        finally:
            self.release()
        super().close()


class ComponentFormatter(logging.Formatter):
    """Adds a short `component` field and appends extra fields as key=value."""

    def format(self, record: logging.LogRecord) -> str:
        record.component = _component(record.name)
        text = super().format(record)
        extra = record_extra(record)
        if not extra:
            return text
        fields = " ".join(f"{key}={value}" for key, value in extra.items())
        return f"{text} {_redactor.redact(fields)}"


def configure_logging(
    level: str | None = None,
    use_rich: bool = False,
    log_to_file: bool = False,
    retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
) -> None:
    """Configure the root logger.

    Args:
        level: DEBUG, INFO, WARNING or ERROR. Defaults to AUTOMATE_LOG_LEVEL,
            then INFO; unknown names fall back to INFO.
        use_rich: Log through rich (daemon running in a terminal).
        log_to_file: Also write JSONL files under ~/.automate/logs/.
        retention_days: Days of JSONL files to keep.
    """
    from automate.config.paths import get_logs_path

    name = (level or os.environ.get("AUTOMATE_LOG_LEVEL") or "INFO").upper()
    log_level = getattr(logging, name if name in LEVELS else "INFO")

    console_handler: logging.Handler
    if use_rich:
        from rich.logging import RichHandler

        console_handler = RichHandler(show_path=False, markup=False)
        console_handler.setFormatter(ComponentFormatter("%(component)s | %(message)s"))
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(
            ComponentFormatter(
                "%(asctime)s | %(levelname)-8s | %(component)s | %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    handlers = [console_handler]

    if log_to_file:
        handlers.append(JSONLHandler(get_logs_path(), retention_days=retention_days))

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
