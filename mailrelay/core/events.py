from __future__ import annotations

import json
import logging
import sys
import threading
from collections import deque
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger("mailrelay")
_TRACEBACK_FORMATTER = logging.Formatter()


def _dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str)


def log_event(event: str, *, level: int = logging.INFO, exc_info: bool = False, **fields: Any) -> None:
    payload: dict[str, Any] = {"event": event, "request_id": request_id_ctx.get()}
    payload.update(fields)
    logger.log(level, _dumps(payload), exc_info=exc_info)


class RecentActivityHandler(logging.Handler):
    """Keeps the last N service log records in memory for the status endpoint."""

    def __init__(self, capacity: int) -> None:
        super().__init__(level=logging.INFO)
        self._records: deque[dict[str, Any]] = deque(maxlen=capacity)
        self._records_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        message = record.getMessage()
        try:
            data = json.loads(message)
        except ValueError:
            data = {"message": message}
        if not isinstance(data, dict):
            data = {"message": message}
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            **data,
        }
        if record.exc_info:
            entry["traceback"] = _TRACEBACK_FORMATTER.formatException(record.exc_info)
        with self._records_lock:
            self._records.append(entry)

    def snapshot(self, limit: int | None = None) -> list[dict[str, Any]]:
        with self._records_lock:
            items = list(self._records)
        if limit is not None:
            items = items[-limit:]
        return items


def _ensure_info_level() -> None:
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)


def install_recent_activity_handler(capacity: int) -> RecentActivityHandler:
    for existing in list(logger.handlers):
        if isinstance(existing, RecentActivityHandler):
            logger.removeHandler(existing)
    handler = RecentActivityHandler(capacity)
    logger.addHandler(handler)
    _ensure_info_level()
    return handler


class StderrLogHandler(logging.StreamHandler):
    """Writes to whatever ``sys.stderr`` is at emit time, so redirected streams are honoured."""

    def __init__(self, level: int = logging.INFO) -> None:
        logging.Handler.__init__(self, level)
        self.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    @property
    def stream(self):  # type: ignore[override]
        return sys.stderr


def install_stream_handler() -> StderrLogHandler:
    for existing in list(logger.handlers):
        if isinstance(existing, StderrLogHandler):
            logger.removeHandler(existing)
    handler = StderrLogHandler()
    logger.addHandler(handler)
    _ensure_info_level()
    return handler
