"""Archive creation with external compression tools.

The preferred format is tried first; when its tool is missing or fails the
other format is used instead, which changes the extension of the result.
Callers must use the returned path.
"""

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path

from archivist.backup.exceptions import ArchiveCreationError

ZIP_EXTENSION = ".zip"
TAR_GZ_EXTENSION = ".tar.gz"
EXTENSIONS = {"zip": ZIP_EXTENSION, "tar.gz": TAR_GZ_EXTENSION}
ARCHIVE_EXTENSIONS = (ZIP_EXTENSION, TAR_GZ_EXTENSION)

DEFAULT_TIMEOUT = 6 * 3600  # 6 hours
FAST_COMPRESSION_MAX = 4  # levels 1-4 map to "Fastest" on Windows
GZIP_DEFAULT_LEVEL = 6
POWERSHELL_CANDIDATES = ("powershell.exe", "powershell", "pwsh")


def archive_extension(archive_type: str) -> str:
    """Return the file extension for ``archive_type``."""
    try:
        return EXTENSIONS[archive_type]
    except KeyError as e:
        error_msg = f"Unsupported archive type: {archive_type}"
        raise ArchiveCreationError(error_msg) from e


def strip_archive_extension(filename: str) -> str | None:
    """Return ``filename`` without its archive extension, or None if it has none."""
    for ext in ARCHIVE_EXTENSIONS:
        if filename.endswith(ext):
            return filename[: -len(ext)]
    return None


class ArchiveCreator:
    """Compresses a folder into a sibling archive file."""

    def __init__(
        self,
        logger: logging.Logger | None = None,
        platform: str | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the archive creator.

        Args:
            logger: Logger instance for logging operations
            platform: Platform name as in ``sys.platform`` (defaults to the current one)
            timeout: Seconds before an archive command is aborted

        """
        self.logger = logger or logging.getLogger(__name__)
        self.platform = platform or sys.platform
        self.timeout = timeout

    @property
    def is_windows(self) -> bool:
        return self.platform.startswith("win")

    def _powershell(self) -> str | None:
        for candidate in POWERSHELL_CANDIDATES:
            found = shutil.which(candidate)
            if found:
                return found
        return None

    def tool_for(self, archive_type: str) -> str | None:
        """Return the executable used for ``archive_type``, or None if missing."""
        if archive_type == "zip":
            return self._powershell() if self.is_windows else shutil.which("zip")
        if archive_type == "tar.gz":
            return shutil.which("tar")
        return None

    def available_methods(self) -> dict[str, bool]:
        """Report which archive formats can currently be produced."""
        return {archive_type: self.tool_for(archive_type) is not None for archive_type in EXTENSIONS}

    def create_archive(
        self,
        folder_path: Path,
        archive_type: str = "zip",
        compression_level: int = 6,
    ) -> Path:
        """Compress ``folder_path`` into ``<folder_path>.<ext>``.

        Args:
            folder_path: Folder to compress; stored in the archive under its own name
            archive_type: Preferred format, ``zip`` or ``tar.gz``
            compression_level: Compression level 0-9

        Returns:
            Path of the archive actually written

        Raises:
            ArchiveCreationError: If neither format could be produced

        """
        folder_path = Path(folder_path)
        if not folder_path.is_dir():
            error_msg = f"Cannot archive missing folder: {folder_path}"
            raise ArchiveCreationError(error_msg)

        preferred = archive_type
        archive_extension(preferred)
        fallback = "tar.gz" if preferred == "zip" else "zip"

        failures: list[str] = []
        for candidate in (preferred, fallback):
            output = folder_path.with_name(folder_path.name + EXTENSIONS[candidate])
            if output.exists():
                error_msg = f"Archive already exists: {output}"
                raise ArchiveCreationError(error_msg)

            tool = self.tool_for(candidate)
            if tool is None:
                self.logger.warning(f"No tool available for {candidate} archives")
                failures.append(f"{candidate}: tool not available")
                continue

            try:
                self._run(candidate, tool, folder_path, output, compression_level)
            except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
                self.logger.warning(f"{candidate} archive of {folder_path} failed: {e}")
                failures.append(f"{candidate}: {self._describe(e)}")
                output.unlink(missing_ok=True)
                continue

            if not output.is_file():
                failures.append(f"{candidate}: command produced no archive")
                continue

            if candidate != preferred:
                self.logger.warning(
                    f"Falling back to {candidate}: archive written as {output.name}",
                )
            self.logger.info(
                f"Archive created: {output} ({output.stat().st_size} bytes)",
            )
            return output

        error_msg = f"Could not create archive of {folder_path} ({'; '.join(failures)})"
        raise ArchiveCreationError(error_msg)

    @staticmethod
    def _describe(error: Exception) -> str:
        if isinstance(error, subprocess.CalledProcessError):
            stderr = (error.stderr or "").strip() if isinstance(error.stderr, str) else ""
            return f"exit code {error.returncode}{f': {stderr[:200]}' if stderr else ''}"
        return str(error)

    def _run(
        self,
        archive_type: str,
        tool: str,
        folder_path: Path,
        output: Path,
        compression_level: int,
    ) -> None:
        if archive_type == "tar.gz":
            self._tar_gz(tool, folder_path, output, compression_level)
        elif self.is_windows:
            self._zip_powershell(tool, folder_path, output, compression_level)
        else:
            self._zip(tool, folder_path, output, compression_level)

    def _zip(self, tool: str, folder_path: Path, output: Path, level: int) -> None:
        cmd = [tool, "-r", "-q", f"-{level}", str(output), folder_path.name]
        self.logger.debug(f"Executing command: {' '.join(cmd)}")
        subprocess.run(  # noqa: S603
            cmd,
            cwd=folder_path.parent,
            check=True,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )

    def _zip_powershell(self, tool: str, folder_path: Path, output: Path, level: int) -> None:
        if level == 0:
            ps_level = "NoCompression"
        elif level <= FAST_COMPRESSION_MAX:
            ps_level = "Fastest"
        else:
            ps_level = "Optimal"
        source = str(folder_path).replace("'", "''")
        destination = str(output).replace("'", "''")
        script = (
            f"Compress-Archive -LiteralPath '{source}' -DestinationPath '{destination}' "
            f"-CompressionLevel {ps_level} -Force"
        )
        cmd = [tool, "-NoProfile", "-NonInteractive", "-Command", script]
        self.logger.debug(f"Executing command: {' '.join(cmd)}")
        subprocess.run(  # noqa: S603
            cmd,
            check=True,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )

    def _tar_gz(self, tool: str, folder_path: Path, output: Path, level: int) -> None:
        env = os.environ.copy()
        # gzip has no level 0, the closest is the fastest one
        gzip_level = max(level, 1)
        if gzip_level != GZIP_DEFAULT_LEVEL:
            env["GZIP"] = f"-{gzip_level}"
        cmd = [tool, "-czf", str(output), "-C", str(folder_path.parent), folder_path.name]
        self.logger.debug(f"Executing command: {' '.join(cmd)}")
        subprocess.run(  # noqa: S603
            cmd,
            check=True,
            capture_output=True,
            text=True,
            timeout=self.timeout,
            env=env,
        )


def create_archive(
    folder_path: Path,
    archive_type: str = "zip",
    compression_level: int = 6,
    logger: logging.Logger | None = None,
) -> Path:
    """Compress ``folder_path`` with a default ``ArchiveCreator``."""
    return ArchiveCreator(logger=logger).create_archive(
        folder_path,
        archive_type=archive_type,
        compression_level=compression_level,
    )
