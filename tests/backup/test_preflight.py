"""Tests for the preflight module."""

import tempfile
from pathlib import Path
from unittest.mock import Mock, patch

from archivist.backup.archiver import ArchiveCreator
from archivist.backup.config_manager import BackupProgram
from archivist.backup.preflight import install_hint, preflight_checks


def make_creator(zip_ok: bool = True, tar_ok: bool = True) -> Mock:
    creator = Mock(spec=ArchiveCreator)
    creator.available_methods.return_value = {"zip": zip_ok, "tar.gz": tar_ok}
    return creator


def codes(issues: list) -> list[str]:
    return [issue.code for issue in issues]


class TestPreflightChecks:
    """Test cases for pre-flight checks."""

    def test_all_ok(self) -> None:
        """Test a program whose paths and tools are all fine."""
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "src"
            source.mkdir()
            program = BackupProgram(name="A", source_path=source, backup_path=Path(temp_dir))

            report = preflight_checks(program, min_free_mb=0, creator=make_creator())

            assert report.status == "ok"
            assert report.ok is True
            assert report.name == "A"

    def test_missing_source(self) -> None:
        """Test that a missing source is an error."""
        with tempfile.TemporaryDirectory() as temp_dir:
            program = BackupProgram(
                name="A",
                source_path=Path(temp_dir) / "missing",
                backup_path=Path(temp_dir),
            )

            report = preflight_checks(program, min_free_mb=0, creator=make_creator())

            assert codes(report.errors) == ["src-access"]
            assert report.status == "error"
            assert report.error_messages()[0].startswith("Source path does not exist")

    def test_missing_destination_is_fine(self) -> None:
        """Test that a destination that does not exist yet is accepted."""
        with tempfile.TemporaryDirectory() as temp_dir:
            program = BackupProgram(
                name="A",
                source_path=Path(temp_dir),
                backup_path=Path(temp_dir) / "new" / "dest",
            )

            report = preflight_checks(program, min_free_mb=0, creator=make_creator())

            assert report.ok is True

    def test_destination_is_a_file(self) -> None:
        """Test that a destination that is not a directory is an error."""
        with tempfile.TemporaryDirectory() as temp_dir:
            dest = Path(temp_dir) / "file"
            dest.write_text("x")
            program = BackupProgram(name="A", source_path=Path(temp_dir), backup_path=dest)

            report = preflight_checks(program, min_free_mb=0, creator=make_creator())

            assert codes(report.errors) == ["dst-access"]

    def test_missing_profile_is_a_warning(self) -> None:
        """Test that a missing profile folder only warns."""
        with tempfile.TemporaryDirectory() as temp_dir:
            program = BackupProgram(
                name="A",
                source_path=Path(temp_dir),
                backup_path=Path(temp_dir),
                profile_path=Path(temp_dir) / "missing",
            )

            report = preflight_checks(program, min_free_mb=0, creator=make_creator())

            assert report.ok is True
            assert report.status == "warning"
            assert codes(report.warnings) == ["profile-access"]

    def test_low_disk_space(self) -> None:
        """Test that too little free space is an error."""
        with tempfile.TemporaryDirectory() as temp_dir:
            program = BackupProgram(name="A", source_path=Path(temp_dir), backup_path=Path(temp_dir))

            with patch("archivist.backup.preflight.get_free_disk_space_mb", return_value=100):
                report = preflight_checks(program, min_free_mb=500, creator=make_creator())

            assert codes(report.errors) == ["disk-space"]
            assert report.errors[0].message == "Low free disk space: 100 MB"

    def test_unknown_disk_space(self) -> None:
        """Test that an unknown amount of free space only warns."""
        with tempfile.TemporaryDirectory() as temp_dir:
            program = BackupProgram(name="A", source_path=Path(temp_dir), backup_path=Path(temp_dir))

            with patch("archivist.backup.preflight.get_free_disk_space_mb", return_value=None):
                report = preflight_checks(program, min_free_mb=500, creator=make_creator())

            assert codes(report.warnings) == ["disk-unknown"]

    def test_no_archiver(self) -> None:
        """Test that missing zip and tar is an error."""
        with tempfile.TemporaryDirectory() as temp_dir:
            program = BackupProgram(name="A", source_path=Path(temp_dir), backup_path=Path(temp_dir))

            report = preflight_checks(
                program,
                min_free_mb=0,
                creator=make_creator(zip_ok=False, tar_ok=False),
            )

            assert codes(report.errors) == ["archiver-missing"]

    def test_zip_missing_falls_back(self) -> None:
        """Test that a missing zip tool warns about the tar.gz fallback."""
        with tempfile.TemporaryDirectory() as temp_dir:
            program = BackupProgram(name="A", source_path=Path(temp_dir), backup_path=Path(temp_dir))

            report = preflight_checks(program, min_free_mb=0, creator=make_creator(zip_ok=False))

            assert report.ok is True
            assert codes(report.warnings) == ["zip-missing"]
            assert "tar.gz will be used" in report.warnings[0].message

    def test_tar_missing_falls_back(self) -> None:
        """Test that a missing tar tool warns about the zip fallback."""
        with tempfile.TemporaryDirectory() as temp_dir:
            program = BackupProgram(
                name="A",
                source_path=Path(temp_dir),
                backup_path=Path(temp_dir),
                archive_type="tar.gz",
            )

            report = preflight_checks(program, min_free_mb=0, creator=make_creator(tar_ok=False))

            assert codes(report.warnings) == ["tar-missing"]


class TestInstallHint:
    """Test cases for platform install hints."""

    def test_hint_per_platform(self) -> None:
        """Test that hints follow the platform."""
        with patch("archivist.backup.preflight.sys.platform", "darwin"):
            assert "brew install zip" in install_hint("zip")
        with patch("archivist.backup.preflight.sys.platform", "win32"):
            assert "winget" in install_hint("zip")
        with patch("archivist.backup.preflight.sys.platform", "linux"):
            assert "package manager" in install_hint("zip")
