"""Command-line entry point for running backup programs."""

import argparse
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from archivist.backup.archiver import ArchiveCreator
from archivist.backup.batch import run_batch
from archivist.backup.config_manager import BackupProgram, ProgramStore
from archivist.backup.exceptions import ConfigurationError
from archivist.backup.index import last_backup_times
from archivist.backup.orchestrator import BackupOrchestrator
from archivist.backup.preflight import preflight_checks
from archivist.logging import LoggingConfig, configure_logging

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_BACKUP_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser of the ``archivist`` command."""
    parser = argparse.ArgumentParser(
        prog="archivist",
        description="Create filtered, compressed snapshots of backup programs.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML file with the program definitions",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        help="Optional .env file with ARCHIVIST_* overrides",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides the configuration)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        help="Directory for the log file (default: ~/.local/log/archivist)",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Log to the console only",
    )
    parser.add_argument(
        "--keep",
        type=int,
        help="Number of archives kept per program (overrides the configuration)",
    )
    parser.add_argument(
        "--program",
        action="append",
        dest="programs",
        metavar="NAME",
        help="Only handle the named program (repeatable)",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=["run", "last-times", "check"],
        help="run backups, show last backup times or run the pre-flight checks",
    )
    return parser


def select_programs(
    programs: list[BackupProgram],
    names: list[str] | None,
) -> list[BackupProgram]:
    """Filter ``programs`` down to ``names``, keeping the configured order.

    Raises:
        ConfigurationError: If a requested name is not configured

    """
    if not names:
        return programs
    known = {program.name for program in programs}
    unknown = [name for name in names if name not in known]
    if unknown:
        error_msg = f"Unknown program(s): {', '.join(unknown)}"
        raise ConfigurationError(error_msg)
    return [program for program in programs if program.name in names]


def _print_last_times(programs: list[BackupProgram]) -> None:
    times = last_backup_times(programs)
    for program in programs:
        if program.name in times:
            moment = datetime.fromtimestamp(times[program.name] / 1000)
            print(f"{program.name}: {moment.isoformat(timespec='seconds')}")
        else:
            print(f"{program.name}: never")


def _print_checks(programs: list[BackupProgram], min_free_mb: int) -> bool:
    creator = ArchiveCreator()
    all_ok = True
    for program in programs:
        report = preflight_checks(program, min_free_mb=min_free_mb, creator=creator)
        print(f"{program.name}: {report.status}")
        for issue in [*report.errors, *report.warnings]:
            print(f"  [{issue.severity}] {issue.code}: {issue.message}")
            print(f"      {issue.hint}")
        all_ok = all_ok and report.ok
    return all_ok


def main(argv: list[str] | None = None) -> int:
    """Run the ``archivist`` command and return its exit code."""
    args = build_parser().parse_args(argv)

    try:
        program_file = ProgramStore.load(args.config, env_file=args.env_file)
        settings = program_file.settings
        if args.keep is not None:
            settings = replace(settings, keep=args.keep)
        if args.log_level:
            settings = replace(settings, log_level=args.log_level)
        programs = select_programs(program_file.programs, args.programs)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger = configure_logging(
        LoggingConfig(
            log_name="archivist",
            log_level=settings.log_level,
            log_dir=args.log_dir,
            enable_file=not args.no_log_file,
        ),
    )

    if args.command == "last-times":
        _print_last_times(programs)
        return EXIT_OK

    if args.command == "check":
        return EXIT_OK if _print_checks(programs, settings.min_free_mb) else EXIT_BACKUP_FAILED

    orchestrator = BackupOrchestrator(settings=settings, logger=logger)
    results = run_batch(programs, orchestrator=orchestrator, logger=logger)
    for result in results:
        if result.success:
            print(f"OK     {result.name}: {result.zip_path}")
            for entry in result.diagnostics:
                print(f"       skipped {entry}")
        else:
            print(f"FAILED {result.name}: {result.error}")

    return EXIT_OK if all(result.success for result in results) else EXIT_BACKUP_FAILED


if __name__ == "__main__":
    sys.exit(main())
