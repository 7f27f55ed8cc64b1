"""Sequential backup of several programs."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from archivist.backup.config_manager import BackupProgram
from archivist.backup.orchestrator import BackupOrchestrator
from archivist.backup.preflight import PreflightIssue
from archivist.backup.tree_copy import SkippedEntry


@dataclass
class BackupResult:
    """Outcome of one program within a batch."""

    name: str
    success: bool
    zip_path: Path | None = None
    error: str | None = None
    diagnostics: list[SkippedEntry] = field(default_factory=list)
    warnings: list[PreflightIssue] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for display layers."""
        if self.success:
            data: dict[str, Any] = {
                "name": self.name,
                "success": True,
                "zipPath": str(self.zip_path),
            }
        else:
            data = {"name": self.name, "success": False, "error": self.error}
        if self.diagnostics:
            data["skipped"] = [str(entry) for entry in self.diagnostics]
        return data


def _program_name(program: object) -> str:
    if isinstance(program, BackupProgram):
        return program.name
    if isinstance(program, Mapping):
        return str(program.get("name") or "unknown")
    return "unknown"


def run_batch(
    programs: Iterable[BackupProgram | Mapping[str, Any]],
    orchestrator: BackupOrchestrator | None = None,
    keep: int | None = None,
    logger: logging.Logger | None = None,
) -> list[BackupResult]:
    """Back up ``programs`` one after another.

    A failing program never stops the batch: its exception is turned into a
    failed result and the next program runs. Raw mappings are converted to
    programs first; invalid ones fail like any other run.

    Args:
        programs: Programs (or raw program mappings) to back up
        orchestrator: Orchestrator running each program
        keep: Keep-count passed to every run, defaults to the orchestrator settings
        logger: Logger instance for logging operations

    Returns:
        One result per program, in input order

    """
    logger = logger or logging.getLogger(__name__)
    orchestrator = orchestrator or BackupOrchestrator(logger=logger)
    results: list[BackupResult] = []

    logger.info("Starting batch backup")
    for entry in programs:
        name = _program_name(entry)
        logger.info(f"Starting backup for program: {name}")
        try:
            program = entry if isinstance(entry, BackupProgram) else BackupProgram.from_dict(entry)
            outcome = orchestrator.run(program, keep=keep)
        except Exception as e:
            logger.error(f"Backup failed for program: {name} - {e}")  # noqa: TRY400
            results.append(BackupResult(name=name, success=False, error=str(e) or type(e).__name__))
        else:
            results.append(
                BackupResult(
                    name=name,
                    success=True,
                    zip_path=outcome.zip_path,
                    diagnostics=outcome.diagnostics,
                    warnings=outcome.warnings,
                    duration_seconds=outcome.duration_seconds,
                ),
            )

    succeeded = sum(1 for result in results if result.success)
    failed = len(results) - succeeded
    logger.info(
        f"Batch complete: {succeeded} successful, {failed} failed out of {len(results)}",
    )
    return results
