"""Unfiltered merge of a profile directory into a snapshot."""

import logging
from pathlib import Path

from archivist.backup.exceptions import SourceNotFoundError
from archivist.backup.tree_copy import TraversalReport, TraversalVisitor, copy_tree

PROFILES_DIRNAME = "Profiles"


def merge_profile(
    profile_path: Path | None,
    dest_root: Path,
    *,
    retries: int = 3,
    retry_delay: float = 0.5,
    logger: logging.Logger | None = None,
) -> TraversalReport:
    """Copy the whole ``profile_path`` tree into ``dest_root/Profiles``.

    Profile data is often held open by the program that owns it, so a file
    or directory that cannot be copied is recorded as skipped and the merge
    goes on. A missing ``profile_path`` is not an error.

    Returns:
        Report of the merge, paths relative to ``profile_path``

    """
    logger = logger or logging.getLogger(__name__)
    report = TraversalReport()

    if profile_path is None or not str(profile_path).strip():
        return report

    profile_path = Path(profile_path)
    if not profile_path.is_dir():
        logger.info(f"Profile path '{profile_path}' is not a directory, skipping merge")
        return report

    destination = Path(dest_root) / PROFILES_DIRNAME
    try:
        copy_tree(
            profile_path,
            destination,
            TraversalVisitor(report),
            best_effort=True,
            retries=retries,
            retry_delay=retry_delay,
            logger=logger,
        )
    except (SourceNotFoundError, OSError) as e:
        logger.warning(f"Failed to copy profile '{profile_path}': {e}")
        report.skip(profile_path, e)
    else:
        logger.info(
            f"Merged profile '{profile_path}' into {destination} "
            f"({len(report.included)} files, {len(report.skipped)} skipped)",
        )

    return report
