"""
Logging setup for debrief-sync.

structlog renders events through the stdlib root logger, which fans out
to a rich console handler, optional rotating JSON files and, when a DSN
is configured, Sentry. Modules obtain loggers with get_logger() and log
snake_case events with key/value context, e.g.

    logger.info("bulk_load_complete", organization="peep", rows=42)
"""

import functools
import json
import logging
import logging.handlers
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import sentry_sdk
import structlog
from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install as install_rich_traceback
from sentry_sdk.integrations.logging import LoggingIntegration


console = Console(file=sys.stderr)

# Per-file size before rotation
MAX_LOG_BYTES = 5 * 1024 * 1024

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line for the rotating log files."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        extras = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        for name, value in extras.items():
            entry[name] = value if _is_json_safe(value) else repr(value)
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _is_json_safe(value: Any) -> bool:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return False
    return True


def _shared_processors() -> List[Any]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _file_handlers(log_dir: Path, app_name: str) -> List[logging.Handler]:
    log_dir.mkdir(parents=True, exist_ok=True)
    handlers = []
    for suffix, level, backups in (("", logging.DEBUG, 7), ("-errors", logging.WARNING, 3)):
        handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{app_name}{suffix}.log",
            maxBytes=MAX_LOG_BYTES,
            backupCount=backups,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(JSONFormatter())
        handlers.append(handler)
    return handlers


def setup_logging(
    app_name: str = "debrief-sync",
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
    enable_json: bool = False,
    enable_console: bool = True,
    enable_sentry: bool = False,
    sentry_dsn: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Configure structlog and the root logger handlers.

    Args:
        app_name: Name of the top-level logger and of the log files
        log_level: Root level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for rotating JSON files; no file logging when None
        enable_json: Render events as JSON on the console too
        enable_console: Attach the rich console handler
        enable_sentry: Forward ERROR events to Sentry
        sentry_dsn: Sentry DSN; Sentry stays off without one

    Returns:
        The app logger, the resolved log directory and the console
    """
    level = getattr(logging, log_level.upper())
    install_rich_traceback(show_locals=False, suppress=["click"])

    renderer = structlog.processors.JSONRenderer() if enable_json else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=_shared_processors() + [renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if enable_console:
        rich_handler = RichHandler(
            console=console,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
            tracebacks_suppress=["asyncio"],
        )
        rich_handler.setLevel(level)
        root.addHandler(rich_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        for handler in _file_handlers(log_dir, app_name):
            root.addHandler(handler)

    if not root.handlers:
        root.addHandler(logging.NullHandler())

    sentry_active = bool(enable_sentry and sentry_dsn)
    if sentry_active:
        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
            traces_sample_rate=0.0,
        )

    logger = structlog.get_logger(app_name)
    logger.info(
        "logging_configured",
        level=log_level,
        log_dir=str(log_dir) if log_dir else None,
        sentry=sentry_active,
        pid=os.getpid(),
    )
    return {"logger": logger, "log_dir": log_dir, "console": console}


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance by name."""
    return structlog.get_logger(name)


def log_function_call(logger: structlog.BoundLogger):
    """
    Time a remote store coroutine and log its outcome.

    The backend class name is bound as ``store``; failures are logged at
    warning and re-raised unchanged.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            log = logger.bind(store=type(self).__name__, op=func.__name__)
            started = time.perf_counter()
            try:
                result = await func(self, *args, **kwargs)
            except Exception as e:
                log.warning(
                    "remote_call_failed",
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise
            log.debug("remote_call", duration_ms=round((time.perf_counter() - started) * 1000, 2))
            return result

        return wrapper

    return decorator


__all__ = [
    'setup_logging',
    'get_logger',
    'log_function_call',
    'JSONFormatter',
]
