"""Display/log collaborator.

The core reports progress as *status lines* and *log entries*, each tagged
with a severity.  :class:`DisplayLog` keeps the latest status and the most
recent ``max_entries`` entries, newest first.  It has no opinion on
presentation; the CLI prints from it and the status app serves it as JSON.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

Severity = Literal["info", "success", "warning", "error", "sent", "received", "result", "qr"]

_LEVEL_TO_SEVERITY: dict[int, Severity] = {
    logging.DEBUG: "info",
    logging.INFO: "info",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


@dataclass(frozen=True, slots=True)
class LogEntry:
    message: str
    severity: Severity = "info"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, str]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity,
            "message": self.message,
        }


class DisplayLog:
    """Bounded, newest-first history of status lines and log entries."""

    def __init__(self, max_entries: int = 50) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)
        self._status: LogEntry | None = None

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or 0

    @property
    def status(self) -> LogEntry | None:
        return self._status

    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def set_status(self, message: str, severity: Severity = "info") -> LogEntry:
        entry = LogEntry(message=message, severity=severity)
        self._status = entry
        return entry

    def log(self, message: str, severity: Severity = "info") -> LogEntry:
        entry = LogEntry(message=message, severity=severity)
        self._entries.appendleft(entry)
        return entry

    def clear(self) -> None:
        self._entries.clear()


class DisplayLogHandler(logging.Handler):
    """Forward ``qr-autofetch`` log records into a :class:`DisplayLog`.

    Records may name their severity explicitly via ``extra={"severity": ...}``;
    otherwise it is derived from the level.
    """

    def __init__(self, display: DisplayLog, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.display = display

    def emit(self, record: logging.LogRecord) -> None:
        try:
            severity = getattr(record, "severity", None) or _LEVEL_TO_SEVERITY.get(
                record.levelno, "info"
            )
            self.display.log(record.getMessage(), severity)
        except Exception:  # noqa: BLE001
            self.handleError(record)


def format_countdown(remaining_ms: int) -> str:
    """Render a countdown as seconds with one decimal, e.g. ``"9.9s"``."""
    remaining_ms = max(0, int(remaining_ms))
    seconds, millis = divmod(remaining_ms, 1000)
    return f"{seconds}.{millis // 100}s"
