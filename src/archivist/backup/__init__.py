"""Backup engine: filtered copy, archiving and retention of program snapshots."""

from .archiver import ArchiveCreator, create_archive
from .batch import BackupResult, run_batch
from .config_manager import BackupProgram, EngineSettings, ProgramFile, ProgramStore
from .exceptions import (
    ArchiveCreationError,
    BackupError,
    ConfigurationError,
    InvalidProgramError,
    PreflightError,
    RetentionError,
    SourceNotFoundError,
)
from .index import last_backup_times
from .orchestrator import BackupOrchestrator, BackupOutcome, RunState
from .patterns import PatternMatcher, matches
from .preflight import PreflightIssue, PreflightReport, preflight_checks
from .profile import merge_profile
from .retention import RotationReport, rotate
from .tree_copy import SkippedEntry, TraversalReport, copy_filtered, has_matching_files

__all__ = [
    "ArchiveCreationError",
    "ArchiveCreator",
    "BackupError",
    "BackupOrchestrator",
    "BackupOutcome",
    "BackupProgram",
    "BackupResult",
    "ConfigurationError",
    "EngineSettings",
    "InvalidProgramError",
    "PatternMatcher",
    "PreflightError",
    "PreflightIssue",
    "PreflightReport",
    "ProgramFile",
    "ProgramStore",
    "RetentionError",
    "RotationReport",
    "RunState",
    "SkippedEntry",
    "SourceNotFoundError",
    "TraversalReport",
    "copy_filtered",
    "create_archive",
    "has_matching_files",
    "last_backup_times",
    "matches",
    "merge_profile",
    "preflight_checks",
    "rotate",
    "run_batch",
]

__version__ = "0.1.0"
