"""
agora.services.log_buffer — Recent Log Capture for the Admin API
==================================================================

A logging handler that keeps the last N records in memory so admins can
tail the server log through ``GET /api/admin/logs`` and raise or lower the
capture level at runtime.  Nothing is persisted; a restart starts empty.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

DEFAULT_CAPACITY = 2000
VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True, slots=True)
class CapturedRecord:
    timestamp: str
    level: str
    levelno: int
    logger: str
    message: str

    def to_dict(self) -> dict:
        data = asdict(self)
        del data["levelno"]
        return data


class BufferHandler(logging.Handler):
    """Thread-safe bounded in-memory log handler."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY, level: int = logging.DEBUG) -> None:
        super().__init__(level)
        self._records: deque[CapturedRecord] = deque(maxlen=capacity)
        self._records_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            captured = CapturedRecord(
                timestamp=datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                level=record.levelname,
                levelno=record.levelno,
                logger=record.name,
                message=self.format(record),
            )
        except Exception:
            self.handleError(record)
            return
        with self._records_lock:
            self._records.append(captured)

    def tail(
        self,
        count: int = 200,
        *,
        min_level: str | None = None,
        logger_prefix: str | None = None,
    ) -> list[dict]:
        """Newest *count* records (oldest first) matching the filters."""
        threshold = logging.getLevelName(min_level.upper()) if min_level else 0
        if not isinstance(threshold, int):
            raise ValueError(f"Invalid level: {min_level}")
        with self._records_lock:
            snapshot = list(self._records)
        matched = [
            r for r in snapshot
            if r.levelno >= threshold
            and (not logger_prefix or r.logger.startswith(logger_prefix))
        ]
        if count:
            matched = matched[-count:]
        return [r.to_dict() for r in matched]

    def __len__(self) -> int:
        with self._records_lock:
            return len(self._records)


_handler: BufferHandler | None = None
_install_lock = threading.Lock()


def install_handler(level: int = logging.DEBUG) -> BufferHandler:
    """Attach the process-wide :class:`BufferHandler` to the root logger.

    Calling it again returns the installed handler.  Uvicorn's loggers are
    made to propagate so request logs are captured as well.
    """
    global _handler
    with _install_lock:
        if _handler is None:
            _handler = BufferHandler(level=level)
            _handler.setFormatter(logging.Formatter("%(message)s"))
            logging.getLogger().addHandler(_handler)
            for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
                logging.getLogger(name).propagate = True
        return _handler


def get_logs(
    tail: int = 200, level: str | None = None, logger_filter: str | None = None,
) -> list[dict]:
    return install_handler().tail(tail, min_level=level, logger_prefix=logger_filter)


def get_capture_level() -> str:
    return logging.getLevelName(install_handler().level)


def set_capture_level(level_name: str) -> str:
    """Change the minimum level captured; returns the normalised name."""
    name = (level_name or "").upper()
    if name not in VALID_LEVELS:
        raise ValueError(f"Invalid level: {level_name}. Must be one of {VALID_LEVELS}")
    install_handler().setLevel(getattr(logging, name))
    return name
