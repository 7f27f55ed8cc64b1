"""Filtered directory tree copy.

The walk is driven by a visitor that classifies every entry as included,
excluded or skipped. Skipped entries (directories that cannot be read, files
that cannot be copied in best-effort mode) are collected in a
``TraversalReport`` so callers can see what did not make it into a snapshot.
"""

import logging
import os
import shutil
import sys
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from archivist.backup.exceptions import SourceNotFoundError
from archivist.backup.patterns import PatternMatcher


class EntryStatus(Enum):
    """Outcome of visiting a single filesystem entry."""

    INCLUDED = "included"
    EXCLUDED = "excluded"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SkippedEntry:
    """An entry left out of a copy because of a filesystem error."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"


@dataclass
class TraversalReport:
    """What a tree copy did with each entry it saw.

    ``included`` and ``excluded`` hold file paths relative to the copied root,
    ``pruned`` holds relative directories left out for having no matching
    files and ``skipped`` holds the entries that failed.
    """

    included: list[Path] = field(default_factory=list)
    excluded: list[Path] = field(default_factory=list)
    pruned: list[Path] = field(default_factory=list)
    skipped: list[SkippedEntry] = field(default_factory=list)

    def skip(self, path: Path, error: BaseException | str) -> None:
        if any(entry.path == path for entry in self.skipped):
            return
        self.skipped.append(SkippedEntry(path=path, reason=str(error)))

    def merge(self, other: "TraversalReport") -> None:
        self.included.extend(other.included)
        self.excluded.extend(other.excluded)
        self.pruned.extend(other.pruned)
        for entry in other.skipped:
            self.skip(entry.path, entry.reason)

    @property
    def has_skipped(self) -> bool:
        return bool(self.skipped)


class TraversalVisitor:
    """Decides which entries of a tree are copied. Copies everything by default."""

    def __init__(self, report: TraversalReport) -> None:
        self.report = report

    def visit_file(self, path: Path) -> EntryStatus:  # noqa: ARG002
        return EntryStatus.INCLUDED

    def visit_dir(self, path: Path) -> EntryStatus:  # noqa: ARG002
        return EntryStatus.INCLUDED


class FilterVisitor(TraversalVisitor):
    """Includes files matching the patterns and directories that contain any.

    Directory lookahead results are cached so each directory is scanned once.
    A directory that cannot be read counts as containing no matches and is
    reported as skipped.
    """

    def __init__(self, matcher: PatternMatcher, report: TraversalReport) -> None:
        super().__init__(report)
        self.matcher = matcher
        self._has_match: dict[Path, bool] = {}
        self._unreadable: set[Path] = set()

    def visit_file(self, path: Path) -> EntryStatus:
        return EntryStatus.INCLUDED if self.matcher(path.name) else EntryStatus.EXCLUDED

    def visit_dir(self, path: Path) -> EntryStatus:
        if self.has_matching_files(path):
            return EntryStatus.INCLUDED
        if path in self._unreadable:
            return EntryStatus.SKIPPED
        return EntryStatus.EXCLUDED

    def has_matching_files(self, directory: Path) -> bool:
        """Return True if any file below ``directory`` matches, at any depth."""
        cached = self._has_match.get(directory)
        if cached is not None:
            return cached

        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except OSError as e:
            self._unreadable.add(directory)
            self.report.skip(directory, e)
            self._has_match[directory] = False
            return False

        # Files first so shallow matches avoid descending at all
        found = any(
            _is_file(entry) and self.matcher(entry.name) for entry in entries
        ) or any(
            _is_dir(entry) and self.has_matching_files(Path(entry.path))
            for entry in entries
        )
        self._has_match[directory] = found
        return found


def _is_file(entry: os.DirEntry) -> bool:
    try:
        return entry.is_file(follow_symlinks=False)
    except OSError:
        return False


def _is_dir(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir(follow_symlinks=False)
    except OSError:
        return False


LONG_PATH_LIMIT = 240
LONG_PATH_PREFIX = "\\\\?\\"


def long_path(path: Path | str, platform: str | None = None) -> str:
    """Return ``path`` in a form Windows accepts beyond MAX_PATH.

    On Windows, absolute paths longer than 240 characters get the ``\\\\?\\``
    prefix (``\\\\?\\UNC\\`` for network shares). Elsewhere the path is returned
    unchanged.
    """
    platform = platform or sys.platform
    text = str(path)
    if not platform.startswith("win") or len(text) <= LONG_PATH_LIMIT:
        return text
    if text.startswith(LONG_PATH_PREFIX):
        return text
    if text.startswith("\\\\"):
        return f"{LONG_PATH_PREFIX}UNC\\{text[2:]}"
    return LONG_PATH_PREFIX + os.path.abspath(text)


def copy_file_with_retry(
    src: Path,
    dst: Path,
    retries: int = 3,
    delay: float = 0.5,
    logger: logging.Logger | None = None,
) -> None:
    """Copy ``src`` to ``dst`` with metadata, retrying while the source is missing.

    Files that vanish for a moment (editors replacing them, sync clients) get
    ``retries`` attempts ``delay`` seconds apart. Any other error is raised
    immediately. Long paths are prefixed on Windows, see ``long_path``.

    Raises:
        OSError: If the copy fails

    """
    logger = logger or logging.getLogger(__name__)
    os.makedirs(long_path(dst.parent), exist_ok=True)

    for attempt in range(1, retries + 1):
        try:
            shutil.copy2(long_path(src), long_path(dst))
        except FileNotFoundError:
            logger.warning(
                f"Source file not found '{src}' (attempt {attempt}/{retries})",
            )
            if attempt >= retries:
                raise
            time.sleep(delay)
        else:
            return


def copy_tree(
    source_dir: Path,
    dest_dir: Path,
    visitor: TraversalVisitor,
    *,
    best_effort: bool = False,
    retries: int = 3,
    retry_delay: float = 0.5,
    logger: logging.Logger | None = None,
) -> TraversalReport:
    """Mirror ``source_dir`` into ``dest_dir`` as directed by ``visitor``.

    Directories that cannot be listed are always skipped. File copy errors
    are skipped in ``best_effort`` mode and raised otherwise. Symlinks and
    special files are ignored.

    Raises:
        SourceNotFoundError: If ``source_dir`` is not a readable directory
        OSError: If a file copy fails and ``best_effort`` is False

    """
    logger = logger or logging.getLogger(__name__)
    report = visitor.report

    if not source_dir.is_dir():
        error_msg = f"Source is not a directory: {source_dir}"
        raise SourceNotFoundError(error_msg)

    dest_dir.mkdir(parents=True, exist_ok=True)
    stack = [Path()]
    while stack:
        rel = stack.pop()
        current = source_dir / rel
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            if rel == Path():
                error_msg = f"Source directory is not readable: {source_dir}"
                raise SourceNotFoundError(error_msg, original_error=e) from e
            logger.warning(f"Skipping unreadable directory '{current}': {e}")
            report.skip(current, e)
            continue

        for entry in entries:
            src = Path(entry.path)
            rel_path = rel / entry.name
            if _is_dir(entry):
                status = visitor.visit_dir(src)
                if status is EntryStatus.INCLUDED:
                    (dest_dir / rel_path).mkdir(parents=True, exist_ok=True)
                    stack.append(rel_path)
                elif status is EntryStatus.SKIPPED:
                    logger.warning(f"Skipping unreadable directory '{src}'")
                else:
                    report.pruned.append(rel_path)
            elif _is_file(entry):
                if visitor.visit_file(src) is not EntryStatus.INCLUDED:
                    report.excluded.append(rel_path)
                    continue
                try:
                    copy_file_with_retry(
                        src,
                        dest_dir / rel_path,
                        retries=retries,
                        delay=retry_delay,
                        logger=logger,
                    )
                except OSError as e:
                    if not best_effort:
                        raise
                    logger.warning(f"Skipping file '{src}': {e}")
                    report.skip(src, e)
                else:
                    report.included.append(rel_path)
            else:
                logger.debug(f"Ignoring special file or symlink '{src}'")

    return report


def has_matching_files(directory: Path, patterns: Iterable[str] | None) -> bool:
    """Return True if ``directory`` holds a file matching ``patterns`` at any depth.

    Unreadable directories count as holding no matches.
    """
    visitor = FilterVisitor(PatternMatcher(patterns), TraversalReport())
    return visitor.has_matching_files(Path(directory))


def copy_filtered(
    source_dir: Path,
    dest_dir: Path,
    patterns: Iterable[str] | None,
    *,
    retries: int = 3,
    retry_delay: float = 0.5,
    logger: logging.Logger | None = None,
) -> TraversalReport:
    """Copy the files of ``source_dir`` matching ``patterns`` into ``dest_dir``.

    Directories without any matching file below them are not created.

    Args:
        source_dir: Directory to copy from
        dest_dir: Directory receiving the mirrored tree
        patterns: Filename globs; empty or None copies every file
        retries: Copy attempts per file while the source is missing
        retry_delay: Seconds between attempts
        logger: Logger for progress and skipped entries

    Returns:
        Report of included, excluded, pruned and skipped entries

    Raises:
        SourceNotFoundError: If ``source_dir`` is not a directory

    """
    report = TraversalReport()
    visitor = FilterVisitor(PatternMatcher(patterns), report)
    return copy_tree(
        Path(source_dir),
        Path(dest_dir),
        visitor,
        best_effort=False,
        retries=retries,
        retry_delay=retry_delay,
        logger=logger,
    )
