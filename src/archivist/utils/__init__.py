"""Filesystem and system helpers shared by the backup engine."""

from .common import (
    TIMESTAMP_FORMAT,
    format_timestamp,
    get_free_disk_space_mb,
    get_system_info,
    is_writable_dir,
)

__all__ = [
    "TIMESTAMP_FORMAT",
    "format_timestamp",
    "get_free_disk_space_mb",
    "get_system_info",
    "is_writable_dir",
]
