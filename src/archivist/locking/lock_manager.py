"""Lock files guarding a backup destination against parallel runs."""

import logging
import os
import socket
import sys
import types
from pathlib import Path

from archivist.exceptions import LockAlreadyTakenError

LOCK_FILENAME = ".archivist.lock"


class LockManager:
    """Manages a file-based lock for one backup destination."""

    def __init__(
        self,
        lock_file: Path,
        logger: logging.Logger,
        owner: str | None = None,
    ) -> None:
        """Initialize the LockManager.

        Args:
            lock_file: Path to the lock file
            logger: Logger instance for logging operations
            owner: Optional name of the run holding the lock, written into the file

        """
        self.lock_file = lock_file
        self.logger = logger
        self.owner = owner
        self._held = False

    @classmethod
    def for_directory(
        cls,
        directory: Path,
        logger: logging.Logger,
        owner: str | None = None,
    ) -> "LockManager":
        """Create the lock manager guarding ``directory``."""
        return cls(directory / LOCK_FILENAME, logger, owner)

    def __enter__(self) -> "LockManager":
        """Context manager entry point."""
        self.create_lock()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """Context manager exit point."""
        self.release_lock()

    def create_lock(self) -> None:
        """Create the lock file atomically.

        A lock left behind by a run on this host whose process is gone is
        taken over.

        Raises:
            LockAlreadyTakenError: If the lock file already exists and its
                holder may still be running

        """
        try:
            fd = os.open(self.lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as e:
            holder = self._read_holder()
            if not self._is_stale(holder):
                self.logger.error(
                    f"Lock file {self.lock_file} exists. Another backup may be running"
                    f"{f' ({holder})' if holder else ''}.",
                )
                error_message = (
                    f"Lock file {self.lock_file} already exists. "
                    "Delete it if no backup is running."
                )
                raise LockAlreadyTakenError(error_message) from e

            self.logger.warning(f"Removing stale lock file {self.lock_file} ({holder})")
            self.lock_file.unlink(missing_ok=True)
            try:
                fd = os.open(self.lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError as retry_error:
                error_message = f"Lock file {self.lock_file} was taken by another run."
                raise LockAlreadyTakenError(error_message) from retry_error

        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{os.getpid()} {socket.gethostname()} {self.owner or ''}".strip())
        self._held = True
        self.logger.debug(f"Lock file created: {self.lock_file}")

    def release_lock(self) -> None:
        """Release the lock file."""
        if not self._held:
            return
        self._held = False
        if self.lock_file.exists():
            self.lock_file.unlink()
            self.logger.debug(f"Lock file released: {self.lock_file}")
        else:
            self.logger.warning(
                f"Lock file {self.lock_file} does not exist when attempting to release.",
            )

    def _read_holder(self) -> str:
        try:
            return self.lock_file.read_text(encoding="utf-8").strip()
        except OSError:
            return ""

    def _is_stale(self, holder: str) -> bool:
        """Return True if ``holder`` names a process on this host that no longer exists.

        Holders from other hosts or without a pid are never stale, and neither
        is any holder on Windows.
        """
        parts = holder.split(maxsplit=2)
        if len(parts) < 2 or not parts[0].isdigit():
            return False
        if parts[1] != socket.gethostname() or sys.platform.startswith("win"):
            return False
        try:
            os.kill(int(parts[0]), 0)
        except ProcessLookupError:
            return True
        except OSError:
            return False
        return False
