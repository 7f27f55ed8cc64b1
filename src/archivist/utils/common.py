"""Common utility functions for backup operations."""

import os
import platform
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
BYTES_PER_MB = 1024 * 1024


def get_system_info() -> dict[str, Any]:
    """Get system information logged at the start of a backup.

    Returns
    -------
        Dictionary containing system information

    """
    return {
        "platform": platform.system(),
        "platform_version": platform.version(),
        "architecture": platform.machine(),
        "python_version": platform.python_version(),
    }


def format_timestamp(moment: datetime) -> str:
    """Format ``moment`` as used in archive names (sortable, second resolution)."""
    return moment.strftime(TIMESTAMP_FORMAT)


def is_writable_dir(path: Path) -> bool:
    """Return True if ``path`` is an existing directory the process may write to."""
    return path.is_dir() and os.access(path, os.W_OK | os.X_OK)


def nearest_existing_parent(path: Path) -> Path | None:
    """Walk up from ``path`` until an existing directory is found."""
    for candidate in (path, *path.parents):
        if candidate.is_dir():
            return candidate
    return None


def get_free_disk_space_mb(path: Path) -> int | None:
    """Free space in MB on the filesystem holding ``path``, or None if unknown.

    ``path`` does not need to exist yet; the nearest existing parent is used.
    """
    existing = nearest_existing_parent(path)
    if existing is None:
        return None
    try:
        usage = shutil.disk_usage(existing)
    except OSError:
        return None
    return int(usage.free // BYTES_PER_MB)
