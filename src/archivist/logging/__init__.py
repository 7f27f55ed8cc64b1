"""Archivist Logging Module

Centralized logging configuration for the Archivist backup engine.
It supports both file and console logging with rotation capabilities.
"""

from .logger_setup import (
    LoggingConfig,
    ProgramLogAdapter,
    configure_logging,
    program_logger,
)

__all__ = [
    "LoggingConfig",
    "ProgramLogAdapter",
    "configure_logging",
    "program_logger",
]
