"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path

import structlog

LOG_DIR_ENV = "FEEDS_TO_POCKET_LOG_DIR"
LOG_FILENAME = "feeds-to-pocket.log"

_LOGGING_INITIALISED = False


def _log_dir() -> Path | None:
    value = os.environ.get(LOG_DIR_ENV)
    if not value:
        return None
    return Path(value).expanduser().resolve()


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return the application logger.

    The console handler writes JSON lines to stderr so that the Rich output on
    stdout stays readable. A file handler is only attached when
    ``FEEDS_TO_POCKET_LOG_DIR`` points somewhere.
    """

    global _LOGGING_INITIALISED

    if not _LOGGING_INITIALISED:
        console_level = "DEBUG" if verbose else "WARNING"
        handlers: dict[str, dict] = {
            "console": {
                "class": "logging.StreamHandler",
                "level": console_level,
                "formatter": "plain",
                "stream": "ext://sys.stderr",
            },
        }
        log_dir = _log_dir()
        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            handlers["file"] = {
                "class": "logging.FileHandler",
                "level": "INFO",
                "filename": str(log_dir / LOG_FILENAME),
                "formatter": "plain",
                "encoding": "utf-8",
            }

        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": handlers,
                "loggers": {
                    "feeds_to_pocket": {
                        "handlers": list(handlers),
                        "level": "DEBUG" if verbose else "INFO",
                        "propagate": False,
                    },
                    # httpx logs every request at INFO
                    "httpx": {"level": "WARNING"},
                },
            }
        )

        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger("feeds_to_pocket")


def component_logger(component: str) -> structlog.BoundLogger:
    """Return a logger bound to a named component of the pipeline."""

    return structlog.get_logger(f"feeds_to_pocket.{component}").bind(component=component)


__all__ = ["configure_logging", "component_logger", "LOG_DIR_ENV", "LOG_FILENAME"]
