"""Structured logging for pulsewarden.

Every module logs through structlog; records are routed into the stdlib
root logger so console and rotating-file output share one pipeline.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

from pulsewarden.config import Settings, get_settings

# Client libraries whose per-request records would drown heartbeat events
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncpg")

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.StackInfoRenderer(),
    structlog.dev.set_exc_info,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _formatter(renderer: structlog.types.Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer]
    )


def _open_log_file(settings: Settings) -> RotatingFileHandler:
    """Create the log directory and a size-rotated JSON handler inside it.

    Raises:
        OSError: If the directory or file cannot be created.
    """
    Path(settings.log_directory).mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=settings.log_file_path,
        maxBytes=settings.log_file_max_bytes,
        backupCount=settings.log_file_backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    return handler


def setup_logging(settings: Settings | None = None) -> None:
    """Route structlog through stdout and, when enabled, a rotating JSON file.

    Console output is colored in development and JSON elsewhere. A log file
    that cannot be opened downgrades to console-only logging with a warning.
    """
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(
        _formatter(
            structlog.dev.ConsoleRenderer(colors=True)
            if settings.is_development
            else structlog.processors.JSONRenderer()
        )
    )
    handlers: list[logging.Handler] = [console]

    file_error: OSError | None = None
    if settings.log_to_file:
        try:
            handlers.append(_open_log_file(settings))
        except OSError as e:
            file_error = e

    logging.root.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        logging.root.addHandler(handler)

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if file_error is not None:
        get_logger("pulsewarden.logging").warning(
            "file_logging_unavailable", path=settings.log_file_path, error=str(file_error)
        )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
