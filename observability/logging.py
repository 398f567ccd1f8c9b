"""Logging setup with per-pass context.

Every log line written during a generation pass carries that pass's run id
and the trigger that started it (daily, checkpoint, manual, admin), so one
pass can be followed through collectors, completion client and store.

Output:
    text: "HH:MM:SS [LEVEL] [run_id/trigger] logger: message"
    json: one object per line for log aggregation

Usage:
    >>> from observability.logging import setup_logging, set_run_context
    >>> setup_logging(config)
    >>> set_run_context("a1b2c3d4", trigger="daily")
    >>> logger.info("Generation started")  # tagged with a1b2c3d4/daily
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any

LOG_FILE_NAME = "digest.log"

run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")
trigger_var: contextvars.ContextVar[str] = contextvars.ContextVar("trigger", default="-")

# LogRecord attributes that are not user-supplied extras
_RESERVED = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "run_id", "trigger", "message",
})


def set_run_context(run_id: str, trigger: str | None = None) -> None:
    """Tag subsequent log lines in this task with a run id (and trigger)."""
    run_id_var.set(run_id)
    if trigger is not None:
        trigger_var.set(trigger)


def clear_context() -> None:
    """Reset the run id; the trigger is kept for the caller's own lines."""
    run_id_var.set("-")


class ContextFilter(logging.Filter):
    """Copy the context variables onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = run_id_var.get()
        record.trigger = trigger_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """Single-line JSON records.

    Output format:
        {"timestamp": "...", "level": "INFO", "logger": "...", "message": "...",
         "run_id": "...", "trigger": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": getattr(record, "run_id", "-"),
            "trigger": getattr(record, "trigger", "-"),
        }

        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED:
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Format: TIMESTAMP [LEVEL] [run_id/trigger] logger: message"""

    def __init__(self, include_date: bool = False):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] [%(run_id)s/%(trigger)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S" if include_date else "%H:%M:%S",
        )


def setup_logging(config: Any, verbose: bool = False) -> bool:
    """Configure console and rotating file logging.

    Falls back to console-only logging when the log directory is not
    writable.

    Args:
        config: Provides log_level, log_format, log_dir, log_max_bytes,
            log_backup_count
        verbose: Force DEBUG on the console

    Returns:
        True if file logging is enabled, False if console-only
    """
    console_level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    context_filter = ContextFilter()

    if config.log_format == "json":
        console_fmt, file_fmt = JsonFormatter(), JsonFormatter()
    else:
        console_fmt, file_fmt = TextFormatter(include_date=False), TextFormatter(include_date=True)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(console_fmt)
    console.addFilter(context_filter)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.addHandler(console)

    file_logging_enabled = False
    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = config.log_dir / LOG_FILE_NAME

        if config.log_max_bytes > 0:
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=config.log_max_bytes,
                backupCount=config.log_backup_count,
                encoding="utf-8",
            )
        else:
            file_handler = TimedRotatingFileHandler(
                log_file,
                when="midnight",
                interval=1,
                backupCount=config.log_backup_count,
                encoding="utf-8",
            )

        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_fmt)
        file_handler.addFilter(context_filter)
        root.addHandler(file_handler)
        file_logging_enabled = True

    except OSError as e:
        print(
            f"Warning: Cannot write to log directory '{config.log_dir}': {e}. "
            "Falling back to console-only logging.",
            file=sys.stderr,
        )

    # Third-party request logging is noisy at DEBUG
    for lib in ("aiohttp", "aiohttp.access", "httpx", "httpcore", "openai", "asyncio"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return file_logging_enabled
