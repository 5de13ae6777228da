"""Logging configuration shared by the API, the CLI and background sweeps.

Everything goes through the stdlib root logger so that uvicorn, SQLAlchemy
and the Stripe SDK end up in the same files as our own structlog events.
Production and staging render one JSON object per line; everywhere else gets
the coloured console renderer with rich tracebacks.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any

import structlog

from shared.config import current_env

LOG_LEVELS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

JSON_ENVIRONMENTS = frozenset({"production", "staging"})

# Libraries that are chatty at DEBUG
QUIET_LOGGERS = ("sqlalchemy.engine", "stripe", "httpx", "multipart")

_MAX_BYTES = 10 * 1024 * 1024
_BACKUP_COUNT = 5


def get_log_level(env: str | None = None) -> str:
    """``LOG_LEVEL`` if set, otherwise the level for the environment."""
    return os.getenv("LOG_LEVEL", LOG_LEVELS.get(env or current_env(), "INFO"))


def _rotating_file(path: Path, level: str | int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def setup_stdlib_logging(level: str, log_dir: Path) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [
        console,
        _rotating_file(log_dir / "motorhub.log", level),
        _rotating_file(log_dir / "motorhub_error.log", logging.ERROR),
    ]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_processors(json_logs: bool) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ]
        ),
    ]

    if json_logs:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        # ConsoleRenderer formats exceptions itself
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=True, max_frames=2),
            )
        )
    return processors


def setup_structlog(json_logs: bool) -> None:
    structlog.configure(
        processors=build_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(log_dir: Path | None = None) -> None:
    """Configure stdlib logging and structlog for the current environment."""
    env = current_env()
    setup_stdlib_logging(get_log_level(env), log_dir or Path(os.getenv("MOTORHUB_LOG_DIR", "logs")))
    setup_structlog(json_logs=env in JSON_ENVIRONMENTS)


def add_context(**kwargs: Any) -> None:
    """Bind values that every following log line in this context will carry."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
