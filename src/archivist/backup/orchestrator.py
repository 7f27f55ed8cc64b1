"""Backup of a single program from validation to cleanup."""

import contextlib
import logging
import shutil
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from archivist.backup.archiver import ARCHIVE_EXTENSIONS, ArchiveCreator
from archivist.backup.config_manager import BackupProgram, EngineSettings
from archivist.backup.exceptions import (
    ArchiveCreationError,
    ConfigurationError,
    InvalidProgramError,
    PreflightError,
    SourceNotFoundError,
)
from archivist.backup.preflight import PreflightIssue, preflight_checks
from archivist.backup.profile import merge_profile
from archivist.backup.retention import RotationReport, archive_prefix, rotate
from archivist.backup.tree_copy import SkippedEntry, copy_filtered
from archivist.locking import LockManager
from archivist.logging import program_logger
from archivist.utils import format_timestamp, get_system_info


class RunState(Enum):
    """Stages of a single backup run."""

    IDLE = "idle"
    VALIDATING = "validating"
    ROTATING_OLD = "rotating_old"
    STAGING = "staging"
    COPYING = "copying"
    MERGING_PROFILE = "merging_profile"
    ARCHIVING = "archiving"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BackupOutcome:
    """What a successful run produced."""

    zip_path: Path
    diagnostics: list[SkippedEntry] = field(default_factory=list)
    warnings: list[PreflightIssue] = field(default_factory=list)
    rotation: RotationReport | None = None
    duration_seconds: float = 0.0


class BackupOrchestrator:
    """Runs the backup of one program.

    The run rotates old archives, stages a filtered copy (plus the profile) in
    a temporary folder inside the backup directory, compresses it and removes
    the folder again. The folder never outlives the run.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        logger: logging.Logger | None = None,
        archiver: ArchiveCreator | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings: Engine settings (keep-count, retries, disk-space threshold)
            logger: Logger instance for logging operations
            archiver: Archive creator, replaceable in tests
            clock: Source of the run timestamp

        """
        self.settings = settings or EngineSettings()
        self.logger = logger or logging.getLogger(__name__)
        self.archiver = archiver or ArchiveCreator(logger=self.logger)
        self.clock = clock
        self.state = RunState.IDLE
        self.state_history: list[RunState] = []

    def _enter(self, state: RunState) -> None:
        self.state = state
        self.state_history.append(state)

    def validate(self, program: BackupProgram) -> None:
        """Check that ``program`` is complete and its source is a directory.

        Raises:
            InvalidProgramError: If a required field is missing
            SourceNotFoundError: If the source is not an existing directory

        """
        if not isinstance(program, BackupProgram):
            error_msg = "Invalid program config"
            raise InvalidProgramError(error_msg)
        for field_name in ("name", "source_path", "backup_path"):
            value = getattr(program, field_name, None)
            if value is None or not str(value).strip():
                error_msg = f"Invalid program config: '{field_name}' is missing"
                raise InvalidProgramError(error_msg)
        if not program.source_path.is_dir():
            error_msg = f"Source not found: {program.source_path}"
            raise SourceNotFoundError(error_msg)

    def staging_folder(self, program: BackupProgram, moment: datetime) -> Path:
        """Temporary folder for the run; the archive is named after it."""
        return program.backup_path / f"{archive_prefix(program.name)}{format_timestamp(moment)}"

    @contextlib.contextmanager
    def _destination_lock(self, program: BackupProgram) -> Iterator[None]:
        if not self.settings.use_lock:
            yield
            return
        with LockManager.for_directory(program.backup_path, self.logger, owner=program.name):
            yield

    def run(self, program: BackupProgram, keep: int | None = None) -> BackupOutcome:
        """Back up ``program`` and return the archive that was written.

        Args:
            program: Program to back up
            keep: Archives kept by retention, defaults to ``settings.keep``

        Returns:
            Outcome with the archive path and any skipped entries

        Raises:
            InvalidProgramError: If the program definition is incomplete
            SourceNotFoundError: If the source directory does not exist
            PreflightError: If the pre-flight checks report errors
            LockAlreadyTakenError: If another run holds the destination
            ArchiveCreationError: If no archive could be produced or its name is taken

        """
        self.state_history = []
        self._enter(RunState.IDLE)
        start_time = time.monotonic()
        keep = self.settings.keep if keep is None else keep
        if keep < 1:
            error_msg = f"keep must be at least 1, got {keep}"
            raise ConfigurationError(error_msg)
        log = program_logger(self.logger, getattr(program, "name", "?"))

        try:
            self._enter(RunState.VALIDATING)
            self.validate(program)
            log.info(
                f"Starting backup: type {program.archive_type}, "
                f"compression {program.compression_level}",
            )
            log.debug(f"System: {get_system_info()}")

            report = preflight_checks(
                program,
                min_free_mb=self.settings.min_free_mb,
                creator=self.archiver,
            )
            for issue in report.warnings:
                log.warning(f"Pre-flight: {issue.message}")
            if not report.ok:
                error_msg = (
                    f"Pre-flight checks failed for {program.name}:\n"
                    + "\n".join(report.error_messages())
                )
                raise PreflightError(error_msg, report)

            program.backup_path.mkdir(parents=True, exist_ok=True)
            with self._destination_lock(program):
                outcome = self._run_locked(program, keep, log)
            outcome.warnings = list(report.warnings)
            outcome.duration_seconds = time.monotonic() - start_time
        except Exception as e:
            self._enter(RunState.FAILED)
            log.error(f"Backup failed: {e}")
            raise
        else:
            self._enter(RunState.DONE)
            log.info(f"Backup completed successfully: {outcome.zip_path}")
            return outcome
        finally:
            elapsed = time.monotonic() - start_time
            log.info(f"Backup finished in {elapsed:.2f}s")

    def _run_locked(
        self,
        program: BackupProgram,
        keep: int,
        log: logging.LoggerAdapter,
    ) -> BackupOutcome:
        staging = self.staging_folder(program, self.clock())
        self._check_name_free(staging)

        # Rotate before the new archive exists so it can never be rotated away,
        # leaving room for it so that `keep` archives are in place afterwards
        self._enter(RunState.ROTATING_OLD)
        rotation = rotate(
            program.backup_path,
            program.name,
            keep=keep - 1,
            logger=self.logger,
        )
        if not rotation.ok:
            log.warning(f"Retention incomplete, {len(rotation.failed)} archive(s) not moved")

        self._enter(RunState.STAGING)
        staging.mkdir(parents=False, exist_ok=False)
        log.info(f"Staging folder created: {staging}")

        try:
            self._enter(RunState.COPYING)
            copy_report = copy_filtered(
                program.source_path,
                staging,
                program.config_patterns,
                retries=self.settings.copy_retries,
                retry_delay=self.settings.copy_retry_delay,
                logger=self.logger,
            )
            log.info(
                f"Copied {len(copy_report.included)} file(s), "
                f"excluded {len(copy_report.excluded)}",
            )

            self._enter(RunState.MERGING_PROFILE)
            profile_report = merge_profile(
                program.profile_path,
                staging,
                retries=self.settings.copy_retries,
                retry_delay=self.settings.copy_retry_delay,
                logger=self.logger,
            )
            copy_report.merge(profile_report)
            for entry in copy_report.skipped:
                log.warning(f"Skipped: {entry}")

            self._enter(RunState.ARCHIVING)
            archive = self.archiver.create_archive(
                staging,
                archive_type=program.archive_type,
                compression_level=program.compression_level,
            )
        finally:
            self._enter(RunState.CLEANING_UP)
            self._cleanup(staging, log)

        return BackupOutcome(
            zip_path=archive,
            diagnostics=list(copy_report.skipped),
            rotation=rotation,
        )

    def _check_name_free(self, staging: Path) -> None:
        """Fail before rotating or copying when this run's names are taken.

        Two runs of a program within the same second share a timestamp.

        Raises:
            ArchiveCreationError: If the staging folder or one of its archives exists

        """
        archives = [staging.with_name(staging.name + ext) for ext in ARCHIVE_EXTENSIONS]
        candidates = [staging, *archives]
        taken = [path for path in candidates if path.exists()]
        if taken:
            error_msg = f"A backup named {staging.name} already exists: {taken[0]}"
            raise ArchiveCreationError(error_msg)

    def _cleanup(self, staging: Path, log: logging.LoggerAdapter) -> None:
        if not staging.exists():
            return
        try:
            shutil.rmtree(staging)
        except OSError as e:
            log.warning(f"Failed to remove staging folder {staging}: {e}")
        else:
            log.info(f"Staging folder cleaned: {staging}")
