"""Logging configuration and setup utilities for Archivist.

Backups are usually run unattended, so besides the console every run can be
written to a rotating log file. Engine components never configure logging
themselves; they receive a logger or fall back to ``logging.getLogger``.
"""

import logging
import logging.config
import os
from collections.abc import MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LoggerConfigError(Exception):
    """Custom exception for logger configuration errors."""


@dataclass
class LoggingConfig:
    """Configuration for logging setup."""

    log_name: str
    log_filename: str | None = None
    log_level: str = "INFO"
    log_dir: Path | None = None
    max_bytes: int = 5 * 1024 * 1024  # 5 MB
    backup_count: int = 3
    enable_console: bool = True
    enable_file: bool = True


class ProgramLogAdapter(logging.LoggerAdapter):
    """Prefix every message with the backup program it belongs to."""

    def process(
        self,
        msg: Any,
        kwargs: MutableMapping[str, Any],
    ) -> tuple[Any, MutableMapping[str, Any]]:
        """Add the ``[backup:<program>]`` prefix to the message."""
        program = (self.extra or {}).get("program", "?")
        return f"[backup:{program}] {msg}", kwargs


def validate_log_level(log_level: str) -> int:
    """Validate and return the numeric log level."""
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        error_msg = f"Invalid log level: {log_level}"
        raise LoggerConfigError(error_msg)
    return numeric_level


def get_default_log_dir() -> Path:
    """Get the default log directory based on environment."""
    # Services may log to /var/log, desktop users get a directory in their home
    var_log_path = Path("/var/log")
    if var_log_path.exists() and os.access("/var/log", os.W_OK):
        return Path("/var/log/archivist")
    return Path.home() / ".local" / "log" / "archivist"


def _build_handlers(config: LoggingConfig, numeric_level: int) -> dict[str, Any]:
    handlers: dict[str, Any] = {}

    if config.enable_file:
        log_dir = get_default_log_dir() if config.log_dir is None else config.log_dir
        log_filename = config.log_filename or f"{config.log_name}.log"
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            error_msg = f"Failed to create log directory {log_dir}: {e}"
            raise LoggerConfigError(error_msg) from e

        handlers["file_handler"] = {
            "level": numeric_level,
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(log_dir / log_filename),
            "maxBytes": config.max_bytes,
            "backupCount": config.backup_count,
            "formatter": "detailed",
            "encoding": "utf8",
        }

    if config.enable_console:
        handlers["console_handler"] = {
            "level": numeric_level,
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }

    return handlers


def create_logging_config(config: LoggingConfig) -> dict[str, Any]:
    """Create the ``dictConfig`` dictionary for the given configuration."""
    numeric_level = validate_log_level(config.log_level)
    handlers = _build_handlers(config, numeric_level)
    handler_names = list(handlers.keys())

    loggers: dict[str, Any] = {
        config.log_name: {
            "handlers": handler_names,
            "level": numeric_level,
            "propagate": False,
        },
    }

    # Engine modules log under the "archivist" namespace
    if config.log_name != "archivist":
        loggers["archivist"] = {
            "handlers": handler_names,
            "level": numeric_level,
            "propagate": False,
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": CONSOLE_FORMAT, "datefmt": DATE_FORMAT},
            "detailed": {"format": FILE_FORMAT, "datefmt": DATE_FORMAT},
        },
        "handlers": handlers,
        "loggers": loggers,
    }


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """Configure logging for the application.

    Args:
        config: Logging configuration object

    Returns:
        Configured logger instance

    Raises:
        LoggerConfigError: If the log level is invalid

    """
    try:
        logging.config.dictConfig(create_logging_config(config))
        logger = logging.getLogger(config.log_name)
        logger.debug(
            f"Logging configured for '{config.log_name}' at level {config.log_level}",
        )

    except (LoggerConfigError, ValueError, KeyError):
        # Fall back to console logging, e.g. when the log directory is read-only
        logging.basicConfig(
            level=validate_log_level(config.log_level),
            format=CONSOLE_FORMAT,
        )
        logger = logging.getLogger(config.log_name)
        logger.exception("Failed to configure logging. Using fallback configuration.")

    return logger


def program_logger(logger: logging.Logger, program_name: str) -> ProgramLogAdapter:
    """Wrap ``logger`` so that its messages name the backup program."""
    return ProgramLogAdapter(logger, {"program": program_name})
