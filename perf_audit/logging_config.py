"""Structured logging configuration for the engine."""

import logging
import logging.config
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from perf_audit.config import Settings, settings as default_settings

ROOT_LOGGER = "perf_audit"


def setup_logging(config: Optional[Settings] = None) -> None:
    """Configure console logging and, when a log directory is set, file logging."""
    config = config or default_settings

    handlers: dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG" if config.is_development else "INFO",
            "formatter": (
                "json"
                if config.is_production
                else "detailed" if config.is_development else "simple"
            ),
            "stream": sys.stderr,
        },
    }
    extra_handlers: list[str] = []

    # File logging is skipped during automated tests.
    if config.log_dir and not config.is_testing:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        handlers.update(
            {
                "file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "level": "INFO",
                    "formatter": "detailed",
                    "filename": str(log_dir / f"perf-audit-{timestamp}.log"),
                    "maxBytes": 5 * 1024 * 1024,
                    "backupCount": 3,
                    "encoding": "utf-8",
                },
                "error_file": {
                    "class": "logging.FileHandler",
                    "level": "ERROR",
                    "formatter": "detailed",
                    "filename": str(log_dir / f"error-{timestamp}.log"),
                    "encoding": "utf-8",
                },
            }
        )
        extra_handlers = ["file", "error_file"]

    handler_names = ["console"] + extra_handlers

    log_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "simple": {
                "format": "%(levelname)s - %(message)s",
            },
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "format": "%(asctime)s %(name)s %(levelname)s %(filename)s %(lineno)d %(message)s",
            },
        },
        "handlers": handlers,
        "loggers": {
            ROOT_LOGGER: {
                "level": config.log_level,
                "handlers": handler_names,
                "propagate": False,
            },
            "uvicorn": {
                "level": "INFO",
                "handlers": handler_names,
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "level": "INFO" if config.is_development else "WARNING",
                "handlers": handler_names,
                "propagate": False,
            },
        },
        "root": {
            "level": config.log_level,
            "handlers": handler_names,
        },
    }

    logging.config.dictConfig(log_config)

    logger = get_logger("logging")
    logger.info(
        f"Logging configured - Environment: {config.environment}, "
        f"Level: {config.log_level}"
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name.

    Args:
        name: Logger name, typically __name__ of the calling module

    Returns:
        Logger nested under the ``perf_audit`` logger
    """
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
