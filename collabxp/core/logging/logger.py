"""
collabxp logging.

One root pipeline for the whole process: loggers hand records to a bounded
``QueueHandler`` and a ``QueueListener`` thread formats and writes them, so
async code never blocks on I/O. Output is JSON in production (or when
``LOG_JSON`` is set) and plain text otherwise; ``LOG_TO_FILE`` adds a daily
JSON file under ``LOGS_DIR``.

`LogContext` binds user_id, component, operation and correlation_id in a
ContextVar; `ContextFilter` copies them onto every record, and the JSON
formatter emits them next to any ``extra={...}`` fields.

Settings are read from `Config` lazily at setup time so importing this module
does not depend on configuration import order.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

_context: ContextVar[Dict[str, Any]] = ContextVar("collabxp_log_context", default={})

CONTEXT_FIELDS = ("user_id", "correlation_id", "component", "operation")

_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "taskName",
}


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True)
class LoggingSettings:
    environment: str = "development"
    level: int = logging.INFO
    use_json: bool = False
    to_file: bool = False
    logs_dir: Path = Path("logs")

    TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
    DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
    FILE_NAME = "collabxp.json.log"
    FILE_BACKUPS = 7
    QUEUE_MAX_SIZE = 10_000

    @classmethod
    def from_config(cls) -> "LoggingSettings":
        from collabxp.core.config.config import Config

        environment = Config.ENVIRONMENT
        use_json = Config.LOG_JSON if Config.LOG_JSON is not None else environment == "production"
        return cls(
            environment=environment,
            level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
            use_json=use_json,
            to_file=Config.LOG_TO_FILE,
            logs_dir=Path(Config.LOGS_DIR).resolve(),
        )


# ============================================================================
# Health
# ============================================================================


@dataclass
class _PipelineCounters:
    records_enqueued: int = 0
    records_dropped: int = 0
    listener_errors: int = 0


@dataclass(frozen=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    listener_errors: int


_counters = _PipelineCounters()
_log_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_listener: Optional[QueueListener] = None
_installed: List[logging.Handler] = []


# ============================================================================
# Filters, formatters, handlers
# ============================================================================


class ContextFilter(logging.Filter):
    """Stamp the bound log context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _context.get()
        record.user_id = context.get("user_id") or "N/A"
        record.correlation_id = context.get("correlation_id") or "N/A"
        record.component = context.get("component") or record.name.split(".", 1)[0]
        if not hasattr(record, "operation"):
            record.operation = context.get("operation") or "N/A"
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value not in (None, "N/A"):
                data[name] = value

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS
            and key not in CONTEXT_FIELDS
            and not key.startswith("_")
        }
        if extra:
            data["extra"] = extra
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, ensure_ascii=False, default=str)


class _BoundedQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _counters.records_enqueued += 1
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _counters.records_dropped += 1
            sys.stderr.write("collabxp: log queue full, record dropped\n")


class _CountingQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _counters.listener_errors += 1
        sys.stderr.write("collabxp: log handler failed to write a record\n")


def _formatter(settings: LoggingSettings) -> logging.Formatter:
    if settings.use_json:
        return JSONFormatter()
    return logging.Formatter(fmt=settings.TEXT_FORMAT, datefmt=settings.DATE_FORMAT)


def _sinks(settings: LoggingSettings) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_formatter(settings))
    sinks: List[logging.Handler] = [console]

    if settings.to_file:
        settings.logs_dir.mkdir(parents=True, exist_ok=True)
        daily = TimedRotatingFileHandler(
            filename=str(settings.logs_dir / settings.FILE_NAME),
            when="midnight",
            backupCount=settings.FILE_BACKUPS,
            encoding="utf-8",
            utc=True,
        )
        daily.setFormatter(JSONFormatter())
        sinks.append(daily)

    for sink in sinks:
        sink.setLevel(settings.level)
    return sinks


# ============================================================================
# Lifecycle
# ============================================================================


def setup_logging(settings: Optional[LoggingSettings] = None) -> None:
    """Install the queue pipeline on the root logger. No-op when already installed."""
    global _counters, _log_queue, _listener

    if _listener is not None:
        return

    settings = settings or LoggingSettings.from_config()
    _counters = _PipelineCounters()
    _log_queue = queue.Queue(settings.QUEUE_MAX_SIZE)
    _listener = _CountingQueueListener(
        _log_queue, *_sinks(settings), respect_handler_level=True
    )
    _listener.start()

    handler = _BoundedQueueHandler(_log_queue)
    handler.setLevel(settings.level)
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.setLevel(settings.level)
    root.addHandler(handler)
    _installed.append(handler)

    for noisy in ("asyncio", "aiosqlite", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": settings.environment,
            "log_level": logging.getLevelName(settings.level),
            "json": settings.use_json,
            "to_file": settings.to_file,
        },
    )


def shutdown_logging() -> None:
    """Flush and stop the pipeline; safe to call when not installed."""
    global _log_queue, _listener

    if _listener is None:
        return

    _listener.stop()
    for sink in _listener.handlers:
        sink.close()
    _listener = None

    root = logging.getLogger()
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()
    _log_queue = None


def get_logging_health() -> LoggingHealth:
    return LoggingHealth(
        initialized=_listener is not None,
        queue_size=_log_queue.qsize() if _log_queue is not None else 0,
        queue_max_size=_log_queue.maxsize if _log_queue is not None else 0,
        records_enqueued=_counters.records_enqueued,
        records_dropped=_counters.records_dropped,
        listener_errors=_counters.listener_errors,
    )


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


# ============================================================================
# Context
# ============================================================================


class LogContext:
    """
    Bind user/operation context to every record logged inside the block.

    Nested contexts inherit unset fields from the enclosing one; a
    correlation id is generated when none is inherited.

    >>> async with LogContext(user_id="u-1", operation="award_xp"):
    ...     logger.info("XP awarded")
    """

    def __init__(
        self,
        user_id: Optional[Any] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        outer = _context.get()
        self.context: Dict[str, Any] = {
            **outer,
            **extra,
            "user_id": str(user_id) if user_id is not None else outer.get("user_id"),
            "component": component or outer.get("component"),
            "operation": operation or outer.get("operation"),
            "correlation_id": correlation_id
            or outer.get("correlation_id")
            or uuid.uuid4().hex[:8],
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def get_log_context() -> Dict[str, Any]:
    return dict(_context.get())


def set_log_context(**fields: Any) -> None:
    """Merge ``fields`` into the current context; ``None`` values are skipped."""
    merged = dict(_context.get())
    merged.update(
        {
            key: str(value) if key == "user_id" else value
            for key, value in fields.items()
            if value is not None
        }
    )
    _context.set(merged)


def clear_log_context() -> None:
    _context.set({})


setup_logging()
