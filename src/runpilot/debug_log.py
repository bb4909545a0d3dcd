"""Run-aware debug log kept in an in-process ring buffer.

Lifecycle services log through ``log`` with key=value context. Entries that
carry a ``run_id`` are tagged with it so one run's trail can be exported on
its own. Records from the logging module are captured as well once
:func:`setup_debug_logging` installs the handler.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from runpilot.limits import MAX_LOG_LINES, MAX_LOG_MESSAGE_LENGTH

if TYPE_CHECKING:
    from pathlib import Path

_LIFECYCLE_LOGGER_NAME = "runpilot.lifecycle"
_TRUNCATED_SUFFIX = "... [truncated]"


class LogSource(Enum):
    RUNPILOT = "RP"
    LOGGING = "PY"


@dataclass(slots=True)
class LogEntry:
    level: str
    message: str
    timestamp: float
    source: LogSource
    run_id: str | None = None

    def render(self) -> str:
        ts = datetime.fromtimestamp(self.timestamp).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        return f"{ts} [{self.source.value}] [{self.level}] {self.message}"


log_buffer: deque[LogEntry] = deque(maxlen=MAX_LOG_LINES)


def _clip(message: str) -> str:
    if len(message) > MAX_LOG_MESSAGE_LENGTH:
        return message[:MAX_LOG_MESSAGE_LENGTH] + _TRUNCATED_SUFFIX
    return message


class LifecycleLogger:
    """Structured logger for run and autopilot lifecycle events."""

    def __init__(self) -> None:
        self._logger = logging.getLogger(_LIFECYCLE_LOGGER_NAME)

    def _log(self, level: int, event: str, context: dict[str, Any]) -> None:
        message = event
        if context:
            message += " " + " ".join(f"{key}={value!r}" for key, value in context.items())
        message = _clip(message)
        run_id = context.get("run_id")
        log_buffer.append(
            LogEntry(
                level=logging.getLevelName(level),
                message=message,
                timestamp=time.time(),
                source=LogSource.RUNPILOT,
                run_id=run_id if isinstance(run_id, str) else None,
            )
        )
        self._logger.log(level, message)

    def debug(self, event: str, **context: Any) -> None:
        self._log(logging.DEBUG, event, context)

    def info(self, event: str, **context: Any) -> None:
        self._log(logging.INFO, event, context)

    def warning(self, event: str, **context: Any) -> None:
        self._log(logging.WARNING, event, context)

    def error(self, event: str, **context: Any) -> None:
        self._log(logging.ERROR, event, context)


class DebugLogHandler(logging.Handler):
    """Copies logging-module records into the buffer."""

    def emit(self, record: logging.LogRecord) -> None:
        # Lifecycle entries were buffered when they were logged.
        if record.name == _LIFECYCLE_LOGGER_NAME:
            return
        try:
            log_buffer.append(
                LogEntry(
                    level=record.levelname,
                    message=_clip(self.format(record)),
                    timestamp=record.created,
                    source=LogSource.LOGGING,
                )
            )
        except Exception:
            self.handleError(record)


_handler: DebugLogHandler | None = None


def setup_debug_logging(level: int = logging.INFO) -> None:
    """Attach the buffer handler to the root logger; later calls only adjust the level."""
    global _handler

    logging.getLogger("runpilot").setLevel(level)
    if _handler is not None:
        return
    _handler = DebugLogHandler()
    _handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logging.getLogger().addHandler(_handler)
    log.debug("Debug logging initialized", level=logging.getLevelName(level))


def clear_log_buffer() -> None:
    log_buffer.clear()


def entries_for_run(run_id: str) -> list[LogEntry]:
    return [entry for entry in log_buffer if entry.run_id == run_id]


def export_logs_to_file(path: Path, *, run_id: str | None = None) -> int:
    """Write buffered entries to ``path``, only those of ``run_id`` when given.

    Returns the number of entries written.
    """
    entries = entries_for_run(run_id) if run_id is not None else list(log_buffer)
    path.parent.mkdir(parents=True, exist_ok=True)
    header = f"# runpilot debug log, run {run_id}" if run_id else "# runpilot debug log"
    lines = [header, f"# entries: {len(entries)}", ""]
    lines.extend(entry.render() for entry in entries)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return len(entries)


log = LifecycleLogger()
