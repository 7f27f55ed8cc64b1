"""Custom exceptions for the backup module."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from archivist.backup.preflight import PreflightReport


class BackupError(Exception):
    """Base exception for all backup-related errors."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """Initialize the exception with message and optional original error."""
        super().__init__(message)
        self.original_error = original_error
        self.message = message


class ConfigurationError(BackupError):
    """Raised when there are configuration-related issues."""


class InvalidProgramError(ConfigurationError):
    """Raised when a backup program definition is missing or malformed."""


class SourceNotFoundError(BackupError):
    """Raised when the source of a backup does not exist or is not a directory."""


class PreflightError(BackupError):
    """Raised when the pre-flight checks of a program report errors."""

    def __init__(self, message: str, report: PreflightReport) -> None:
        """Initialize the exception with the failing pre-flight report."""
        super().__init__(message)
        self.report = report


class ArchiveCreationError(BackupError):
    """Raised when no archive method could compress the snapshot folder."""


class RetentionError(BackupError):
    """Raised when an archive cannot be relocated into the archive folder."""
