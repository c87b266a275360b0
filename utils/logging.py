# utils/logging.py

"""Logging helpers for the novel workbench.

Modules log through ``structlog.get_logger(__name__)``; ``setup_logging``
routes those records into standard logging with a rotating file handler and
a Rich console handler.
"""

from __future__ import annotations

import logging
import logging.handlers
import os

import structlog
from rich.logging import RichHandler

from config import settings

logger = structlog.get_logger(__name__)

_QUIET_LOGGERS = ("httpx", "httpcore")


__all__ = ["setup_logging"]


def _formatter() -> logging.Formatter:
    return logging.Formatter(settings.LOG_FORMAT, datefmt=settings.LOG_DATE_FORMAT)


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _file_handler(path: str) -> logging.Handler | None:
    """Rotating UTF-8 file handler, or ``None`` when the path is unusable."""
    try:
        log_dir = os.path.dirname(path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
    except OSError as e:  # pragma: no cover - path issues
        logger.error(f"Could not open log file '{path}': {e}")
        return None
    handler.setFormatter(_formatter())
    return handler


def _console_handler(level: str) -> logging.Handler:
    if settings.ENABLE_RICH_LOGGING:
        # Chapter text and prompts may contain brackets; keep Rich markup off.
        return RichHandler(level=level, rich_tracebacks=True, show_path=False, markup=False)
    handler = logging.StreamHandler()
    handler.setFormatter(_formatter())
    return handler


def setup_logging(log_level: str | None = None, log_file: str | None = None) -> None:
    """Configure structlog and standard logging for the workbench.

    ``log_level`` and ``log_file`` override ``WORKBENCH_LOG_LEVEL`` and
    ``LOG_FILE``; an empty log file path disables file logging.
    """
    level = (log_level or settings.LOG_LEVEL_STR).upper()
    path = settings.LOG_FILE if log_file is None else log_file
    _configure_structlog()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    if path:
        file_handler = _file_handler(path)
        if file_handler is not None:
            root_logger.addHandler(file_handler)
    root_logger.addHandler(_console_handler(level))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Workbench logging configured.", log_level=level, log_file=path or None)
