"""
Bounded diagnostics buffer.

DebugLog is a logging.Handler that keeps the most recent records in a ring
buffer, newest first. The composition root owns one instance and attaches it
to the "weekly_dish" logger; nothing here is process-global.
"""

import json
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

DEFAULT_CAPACITY = 50
DATA_PREVIEW_CHARS = 200


@dataclass
class DebugEntry:
    time: str
    level: str
    logger: str
    message: str
    data: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "level": self.level,
            "logger": self.logger,
            "message": self.message,
            "data": self.data,
        }


class DebugLog(logging.Handler):
    """Ring buffer of recent log entries."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY, level: int = logging.DEBUG):
        super().__init__(level=level)
        self.capacity = capacity
        self._entries: deque = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            data = getattr(record, "data", None)
            self._entries.appendleft(DebugEntry(
                time=datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
                level=record.levelname,
                logger=record.name,
                message=record.getMessage(),
                data=_preview(data) if data is not None else None,
            ))
        except Exception:
            self.handleError(record)

    def log(self, message: str, data: Any = None) -> None:
        """Record an entry directly, without going through a logger."""
        self._entries.appendleft(DebugEntry(
            time=datetime.now().strftime("%H:%M:%S"),
            level="DEBUG",
            logger="debug",
            message=message,
            data=_preview(data) if data is not None else None,
        ))

    @property
    def entries(self) -> List[DebugEntry]:
        """Newest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _preview(data: Any) -> str:
    try:
        text = json.dumps(data, default=str)
    except (TypeError, ValueError):
        text = str(data)
    return text[:DATA_PREVIEW_CHARS]
