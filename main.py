"""Archivist command-line interface."""

import logging

from archivist.backup.archiver import ArchiveCreator
from archivist.utils import get_system_info

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


def main() -> None:
    """Display Archivist system information and available archive tools."""
    logger.info("Archivist - Selective Backup Archival")
    logger.info("=" * 40)

    # Display system information
    logger.info("\nSystem Information:")
    info = get_system_info()
    for key, value in info.items():
        logger.info("  %s: %s", key, value)

    logger.info("\nArchive tools:")
    creator = ArchiveCreator()
    for archive_type, available in creator.available_methods().items():
        logger.info("  - %s: %s", archive_type, "available" if available else "missing")

    logger.info("\nRun 'archivist --config programs.yaml run' to back up programs.")


if __name__ == "__main__":
    main()
