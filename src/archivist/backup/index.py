"""Last backup time per program, for display."""

import logging
from collections.abc import Iterable
from pathlib import Path

from archivist.backup.config_manager import BackupProgram
from archivist.backup.retention import ArchiveRecord, list_archives


def latest_archive(backup_dir: Path, program_name: str) -> ArchiveRecord | None:
    """Return the newest archive of ``program_name``, or None if there is none."""
    records = list_archives(backup_dir, program_name)
    return records[0] if records else None


def last_backup_times(
    programs: Iterable[BackupProgram],
    logger: logging.Logger | None = None,
) -> dict[str, float]:
    """Map program names to the mtime (ms since epoch) of their newest archive.

    Programs without archives, or whose backup directory cannot be read, are
    left out.
    """
    logger = logger or logging.getLogger(__name__)
    result: dict[str, float] = {}
    for program in programs:
        try:
            latest = latest_archive(program.backup_path, program.name)
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning(f"Failed to list last times for program '{program.name}': {e}")
            continue
        if latest is not None:
            result[program.name] = latest.mtime_ms
    return result
