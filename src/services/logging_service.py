"""Logging capture for backup runs.

Collects log records emitted while a command runs so the diagnostics the
services only log (rejected menu images, settings that could not be applied,
aborted transactions) can be reported with the result and dumped as JSON Lines.

Design goals:
 - Headless (no Qt dependency here)
 - Capacity-bound ring buffer, thread-safe append (workers log off the GUI thread)
 - Threshold filtering by level number, not by level name
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from threading import RLock
from typing import Any, Deque, Dict, List, Optional

__all__ = [
    "LogEntry",
    "LoggingService",
]


@dataclass(frozen=True)
class LogEntry:
    level: str
    levelno: int
    name: str
    message: str
    created: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class _CaptureHandler(logging.Handler):
    def __init__(self, sink: "LoggingService", level: int) -> None:
        super().__init__(level)
        self._sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        self._sink._append(record)


class LoggingService:
    """Capture records reaching ``logger_name`` (root by default).

    Usage:
        with LoggingService() as logs:
            summary = reconciler.reconcile(raw, "merge")
        problems = logs.warnings()
    """

    def __init__(
        self, capacity: int = 500, level: int = logging.INFO, logger_name: str = ""
    ) -> None:
        self._lock = RLock()
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)
        self._handler = _CaptureHandler(self, level)
        self._logger = logging.getLogger(logger_name)
        self._attached = False

    def attach(self) -> None:
        if self._attached:
            return
        self._logger.addHandler(self._handler)
        # Lower the logger level if needed, never raise it
        if self._logger.getEffectiveLevel() > self._handler.level:
            self._logger.setLevel(self._handler.level)
        self._attached = True

    def detach(self) -> None:
        if self._attached:
            self._logger.removeHandler(self._handler)
            self._attached = False

    def __enter__(self) -> "LoggingService":
        self.attach()
        return self

    def __exit__(self, *exc) -> None:
        self.detach()

    def _append(self, record: logging.LogRecord) -> None:
        entry = LogEntry(
            level=record.levelname,
            levelno=record.levelno,
            name=record.name,
            message=record.getMessage(),
            created=record.created,
        )
        with self._lock:
            self._entries.append(entry)

    def entries(
        self, *, min_level: int = logging.NOTSET, name_contains: Optional[str] = None
    ) -> List[LogEntry]:
        with self._lock:
            data = list(self._entries)
        return [
            e
            for e in data
            if e.levelno >= min_level and (not name_contains or name_contains in e.name)
        ]

    def warnings(self) -> List[str]:
        """Messages at WARNING or above, oldest first."""
        return [e.message for e in self.entries(min_level=logging.WARNING)]

    def export_jsonl(
        self, path: str | Path, *, min_level: int = logging.NOTSET, append: bool = False
    ) -> int:
        """Write captured entries as JSON Lines; returns the number of lines written."""
        selected = self.entries(min_level=min_level)
        with open(path, "a" if append else "w", encoding="utf-8") as f:
            for e in selected:
                f.write(json.dumps(e.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")
        return len(selected)
