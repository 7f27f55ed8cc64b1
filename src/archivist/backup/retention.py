"""Retention of program archives.

The most recent archives of a program stay next to each other in the backup
directory; older ones are moved (never deleted) into ``_archive``.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from archivist.backup.archiver import strip_archive_extension
from archivist.backup.exceptions import RetentionError

ARCHIVE_SUBDIR = "_archive"


@dataclass(frozen=True)
class ArchiveRecord:
    """An existing archive file of a program."""

    path: Path
    mtime: float

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def mtime_ms(self) -> float:
        return self.mtime * 1000


@dataclass
class RotationReport:
    """Result of one retention pass."""

    kept: list[Path] = field(default_factory=list)
    moved: list[Path] = field(default_factory=list)
    failed: list[tuple[Path, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def archive_prefix(program_name: str) -> str:
    """Filename prefix shared by all archives of ``program_name``."""
    return f"{program_name}_Backup_"


def is_program_archive(filename: str, program_name: str) -> bool:
    """Return True if ``filename`` follows the archive naming of ``program_name``."""
    stem = strip_archive_extension(filename)
    return stem is not None and stem.startswith(archive_prefix(program_name))


def list_archives(backup_dir: Path, program_name: str) -> list[ArchiveRecord]:
    """List the archives of ``program_name`` in ``backup_dir``, newest first.

    Archives are ordered by modification time; archives with the same time are
    ordered by name, whose embedded timestamp sorts chronologically.

    Raises:
        OSError: If ``backup_dir`` cannot be listed

    """
    records = []
    with os.scandir(backup_dir) as it:
        for entry in it:
            if not entry.is_file(follow_symlinks=False):
                continue
            if not is_program_archive(entry.name, program_name):
                continue
            try:
                mtime = entry.stat(follow_symlinks=False).st_mtime
            except FileNotFoundError:
                continue
            records.append(ArchiveRecord(path=Path(entry.path), mtime=mtime))

    records.sort(key=lambda record: (record.mtime, record.name), reverse=True)
    return records


def free_target(target_dir: Path, filename: str) -> Path:
    """Return a path in ``target_dir`` named after ``filename`` that does not exist yet.

    A taken name gets a numeric suffix before its archive extension, so
    ``X_Backup_<ts>.zip`` becomes ``X_Backup_<ts>_1.zip``.
    """
    target = target_dir / filename
    stem = strip_archive_extension(filename)
    if stem is None:
        stem, ext = Path(filename).stem, Path(filename).suffix
    else:
        ext = filename[len(stem) :]
    counter = 1
    while target.exists():
        target = target_dir / f"{stem}_{counter}{ext}"
        counter += 1
    return target


def move_archive(source: Path, target_dir: Path) -> Path:
    """Move ``source`` into ``target_dir`` without replacing anything there.

    When ``target_dir`` already holds a file of the same name the archive is
    stored under a suffixed name (see ``free_target``). A rename is tried
    first; if it fails (e.g. across devices) the file is copied to a
    temporary name inside ``target_dir``, renamed into place and the
    original removed only after that succeeded.

    Returns:
        Path the archive was moved to

    Raises:
        RetentionError: If the archive could not be moved

    """
    target = free_target(target_dir, source.name)
    try:
        os.replace(source, target)
    except OSError as rename_error:
        partial = target_dir / f".{target.name}.partial"
        try:
            shutil.copy2(source, partial)
            target = free_target(target_dir, source.name)
            partial.rename(target)
            source.unlink()
        except OSError as e:
            partial.unlink(missing_ok=True)
            error_msg = f"Failed to move {source} to {target}: {e} (rename: {rename_error})"
            raise RetentionError(error_msg, original_error=e) from e
    return target


def rotate(
    backup_dir: Path,
    program_name: str,
    keep: int = 5,
    logger: logging.Logger | None = None,
) -> RotationReport:
    """Keep the ``keep`` newest archives of a program, move the rest to ``_archive``.

    Retention is best-effort: every failure is logged and recorded in the
    report, nothing is raised for filesystem errors. Calling it again without
    new archives changes nothing.

    Args:
        backup_dir: Directory holding the archives
        program_name: Program whose archives are rotated
        keep: Number of archives left in place
        logger: Logger instance for logging operations

    Returns:
        Report of kept, moved and failed archives

    Raises:
        ValueError: If ``keep`` is negative

    """
    if keep < 0:
        error_msg = f"keep must not be negative, got {keep}"
        raise ValueError(error_msg)

    logger = logger or logging.getLogger(__name__)
    report = RotationReport()
    backup_dir = Path(backup_dir)

    try:
        records = list_archives(backup_dir, program_name)
    except OSError as e:
        logger.warning(f"Cannot list archives of '{program_name}' in {backup_dir}: {e}")
        report.failed.append((backup_dir, str(e)))
        return report

    report.kept = [record.path for record in records[:keep]]
    stale = records[keep:]
    if not stale:
        return report

    archive_dir = backup_dir / ARCHIVE_SUBDIR
    try:
        archive_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Cannot create {archive_dir}, old archives stay in place: {e}")
        report.failed.extend((record.path, str(e)) for record in stale)
        return report

    for record in stale:
        try:
            target = move_archive(record.path, archive_dir)
        except RetentionError as e:
            logger.warning(str(e))
            report.failed.append((record.path, e.message))
        else:
            logger.info(f"Old backup moved to archive: {target}")
            report.moved.append(target)

    return report
