"""
Structured logging for the sync service.

Log lines carry a run id taken from a context variable. A sync run binds a
fresh id on entry so every message it emits, including ones from the store
gateway and the Sleeper client, can be grouped afterwards.
"""
import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Iterator, Optional

run_id_var: ContextVar[str] = ContextVar("run_id", default="")

# LogRecord attributes that are not user supplied extras
_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "message", "asctime", "taskName",
})


class JSONFormatter(logging.Formatter):
    """
    Formats each record as one JSON object.

    Fields: timestamp, level, logger, message, run_id, plus `exception` when
    exc_info is set and `extra` for anything passed through `extra=`.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": run_id_var.get(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extras = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        if extras:
            log_data["extra"] = extras

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """Human readable console output for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        line = f"{color}[{record.levelname}]{self.RESET} {record.name}: {record.getMessage()}"

        run_id = run_id_var.get()
        if run_id:
            line += f" | run_id={run_id}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    handler: Optional[logging.Handler] = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Logging level name
        json_output: Use JSONFormatter when True, ColoredFormatter otherwise
        handler: Optional handler; defaults to a stdout StreamHandler
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)

    handler.setFormatter(JSONFormatter() if json_output else ColoredFormatter())
    root_logger.addHandler(handler)

    # Third-party loggers are noisy at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name."""
    return logging.getLogger(name)


def get_run_id() -> str:
    """Return the run id bound to the current context, or an empty string."""
    return run_id_var.get()


@contextmanager
def bind_run_id(run_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a run id for the duration of the block.

    Args:
        run_id: Id to bind; a short random id is generated when omitted

    Yields:
        The bound run id
    """
    value = run_id or uuid.uuid4().hex[:12]
    token = run_id_var.set(value)
    try:
        yield value
    finally:
        run_id_var.reset(token)
