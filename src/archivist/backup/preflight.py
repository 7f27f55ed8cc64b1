"""Pre-flight checks run before a backup starts."""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from archivist.backup.archiver import ArchiveCreator
from archivist.backup.config_manager import DEFAULT_MIN_FREE_MB, BackupProgram
from archivist.utils import get_free_disk_space_mb, is_writable_dir


@dataclass(frozen=True)
class PreflightIssue:
    """A single problem found before a backup."""

    code: str
    message: str
    hint: str
    severity: str = "error"


@dataclass
class PreflightReport:
    """All issues found for one program."""

    name: str
    archive_type: str = "zip"
    errors: list[PreflightIssue] = field(default_factory=list)
    warnings: list[PreflightIssue] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.errors:
            return "error"
        if self.warnings:
            return "warning"
        return "ok"

    @property
    def ok(self) -> bool:
        return not self.errors

    def add(self, code: str, message: str, hint: str, severity: str = "error") -> None:
        issue = PreflightIssue(code=code, message=message, hint=hint, severity=severity)
        if severity == "error":
            self.errors.append(issue)
        else:
            self.warnings.append(issue)

    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.errors]


def install_hint(tool: str) -> str:
    """Suggest how to install ``tool`` on the current platform."""
    if sys.platform == "darwin":
        return f"Install it with Homebrew: brew install {tool}"
    if sys.platform.startswith("win"):
        return f"Install {tool} (e.g. with winget or choco) or add it to PATH"
    return f"Install {tool} with the package manager (apt/dnf/pacman) and add it to PATH"


def _check_source(program: BackupProgram, report: PreflightReport) -> None:
    source = program.source_path
    if not str(source).strip():
        report.add(
            "src-missing",
            "No source path configured",
            "Set source_path in the program definition.",
        )
    elif not source.is_dir() or not os.access(source, os.R_OK | os.X_OK):
        report.add(
            "src-access",
            f"Source path does not exist or is not accessible: {source}",
            "Check the path and its permissions or choose another folder.",
        )


def _check_destination(program: BackupProgram, report: PreflightReport) -> None:
    destination = program.backup_path
    if not str(destination).strip():
        report.add(
            "dst-missing",
            "No backup path configured",
            "Set backup_path in the program definition.",
        )
        return

    # A missing destination is created by the run, only an existing one must be writable
    if destination.exists() and not is_writable_dir(destination):
        report.add(
            "dst-access",
            f"Backup path is not a writable directory: {destination}",
            "Grant write permission or choose another destination folder.",
        )


def _check_profile(program: BackupProgram, report: PreflightReport) -> None:
    if program.profile_path is not None and not program.profile_path.is_dir():
        report.add(
            "profile-access",
            f"Profile folder not found, it will be skipped: {program.profile_path}",
            "Point profile_path to an existing folder or remove it.",
            severity="warning",
        )


def _check_disk_space(
    destination: Path,
    min_free_mb: int,
    report: PreflightReport,
) -> None:
    if min_free_mb <= 0:
        return
    free_mb = get_free_disk_space_mb(destination)
    if free_mb is None:
        report.add(
            "disk-unknown",
            "Could not determine free disk space",
            "Check the permissions of the destination or try another path.",
            severity="warning",
        )
    elif free_mb < min_free_mb:
        report.add(
            "disk-space",
            f"Low free disk space: {free_mb} MB",
            f"Free up space or choose another destination (at least {min_free_mb} MB).",
        )


def _check_archive_tools(
    program: BackupProgram,
    creator: ArchiveCreator,
    report: PreflightReport,
) -> None:
    available = creator.available_methods()
    if not any(available.values()):
        report.add(
            "archiver-missing",
            "Neither zip nor tar is available",
            install_hint("zip"),
        )
    elif not available.get(program.archive_type, False):
        fallback = next(name for name, ok in available.items() if ok)
        report.add(
            "zip-missing" if program.archive_type == "zip" else "tar-missing",
            f"No tool for {program.archive_type} archives, {fallback} will be used",
            install_hint("zip" if program.archive_type == "zip" else "tar"),
            severity="warning",
        )


def preflight_checks(
    program: BackupProgram,
    min_free_mb: int = DEFAULT_MIN_FREE_MB,
    creator: ArchiveCreator | None = None,
) -> PreflightReport:
    """Check that ``program`` can be backed up right now.

    Args:
        program: Program to check
        min_free_mb: Required free space at the destination, 0 disables the check
        creator: Archive creator whose tools are checked

    Returns:
        Report with errors (blocking) and warnings

    """
    report = PreflightReport(name=program.name, archive_type=program.archive_type)
    _check_source(program, report)
    _check_destination(program, report)
    _check_profile(program, report)
    if str(program.backup_path).strip():
        _check_disk_space(program.backup_path, min_free_mb, report)
    _check_archive_tools(program, creator or ArchiveCreator(), report)
    return report
