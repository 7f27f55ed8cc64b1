"""Tests for the config_manager module."""

import json
import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from archivist.backup.config_manager import BackupProgram, EngineSettings, ProgramStore
from archivist.backup.exceptions import ConfigurationError, InvalidProgramError
from archivist.exceptions import InvalidEnvVariableError

PROGRAMS_YAML = """\
settings:
  keep: 3
  min_free_mb: 100
programs:
  - name: Notes
    source_path: /home/user/.config/notes
    backup_path: /backups/notes
    config_patterns:
      - "*.md"
      - "*.ini"
  - name: Browser
    source_path: /home/user/.browser
    backup_path: /backups/browser
    profile_path: /home/user/.browser/profiles
    archive_type: tar.gz
    compression_level: 9
"""


def clean_env() -> dict[str, str]:
    """Process environment without ARCHIVIST_* variables."""
    return {k: v for k, v in os.environ.items() if not k.startswith("ARCHIVIST_")}


class TestProgramStore:
    """Test cases for loading program files."""

    def test_load_yaml_success(self) -> None:
        """Test loading programs and settings from YAML."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "programs.yaml"
            config_file.write_text(PROGRAMS_YAML)

            with patch.dict(os.environ, clean_env(), clear=True):
                loaded = ProgramStore.load(config_file)

            assert [p.name for p in loaded.programs] == ["Notes", "Browser"]
            notes, browser = loaded.programs
            assert notes.source_path == Path("/home/user/.config/notes")
            assert notes.config_patterns == ["*.md", "*.ini"]
            assert notes.profile_path is None
            assert notes.archive_type == "zip"
            assert browser.profile_path == Path("/home/user/.browser/profiles")
            assert browser.archive_type == "tar.gz"
            assert browser.compression_level == 9
            assert loaded.settings.keep == 3
            assert loaded.settings.min_free_mb == 100

    def test_load_json_list(self) -> None:
        """Test loading a JSON list of programs with default settings."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "programs.json"
            config_file.write_text(
                json.dumps([{"name": "A", "source_path": "/s", "backup_path": "/d"}]),
            )

            with patch.dict(os.environ, clean_env(), clear=True):
                loaded = ProgramStore.load(config_file)

            assert loaded.programs[0].name == "A"
            assert loaded.settings == EngineSettings()

    def test_load_empty_file(self) -> None:
        """Test that an empty file has no programs."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "programs.yaml"
            config_file.write_text("")

            with patch.dict(os.environ, clean_env(), clear=True):
                loaded = ProgramStore.load(config_file)

            assert loaded.programs == []

    def test_load_file_not_found(self) -> None:
        """Test that ConfigurationError is raised when the file is not found."""
        with pytest.raises(ConfigurationError, match="Configuration file not found"):
            ProgramStore.load(Path("/nonexistent/programs.yaml"))

    def test_load_invalid_yaml_format(self) -> None:
        """Test that ConfigurationError is raised for invalid YAML."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "programs.yaml"
            config_file.write_text("invalid: yaml: content: [unclosed")

            with pytest.raises(ConfigurationError, match="Invalid configuration file format"):
                ProgramStore.load(config_file)

    def test_load_unexpected_structure(self) -> None:
        """Test that a scalar document is rejected."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "programs.yaml"
            config_file.write_text("just a string")

            with pytest.raises(ConfigurationError, match="Unexpected top-level structure"):
                ProgramStore.load(config_file)

    def test_programs_must_be_a_list(self) -> None:
        """Test that a mapping under 'programs' is rejected."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "programs.yaml"
            config_file.write_text("programs:\n  name: A\n")

            with pytest.raises(ConfigurationError, match="'programs' must be a list"):
                ProgramStore.load(config_file)

    def test_duplicate_names(self) -> None:
        """Test that two programs with the same name are rejected."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "programs.yaml"
            config_file.write_text(
                "- {name: A, source_path: /s, backup_path: /d}\n"
                "- {name: A, source_path: /t, backup_path: /e}\n",
            )

            with pytest.raises(ConfigurationError, match="Duplicate program name"):
                ProgramStore.load(config_file)

    def test_missing_required_field(self) -> None:
        """Test that an incomplete program is reported by field name."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "programs.yaml"
            config_file.write_text("- {name: A, source_path: /s}\n")

            with pytest.raises(InvalidProgramError, match="backup_path"):
                ProgramStore.load(config_file)

    def test_env_file_overrides(self) -> None:
        """Test that a .env file overrides the settings section."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "programs.yaml"
            env_file = Path(temp_dir) / ".env"
            config_file.write_text(PROGRAMS_YAML)
            env_file.write_text("ARCHIVIST_KEEP=7\nARCHIVIST_LOG_LEVEL=debug\n")

            with patch.dict(os.environ, clean_env(), clear=True):
                loaded = ProgramStore.load(config_file, env_file=env_file)

            assert loaded.settings.keep == 7
            assert loaded.settings.log_level == "DEBUG"
            assert loaded.settings.min_free_mb == 100

    def test_process_environment_wins(self) -> None:
        """Test that the process environment wins over the .env file."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "programs.yaml"
            env_file = Path(temp_dir) / ".env"
            config_file.write_text(PROGRAMS_YAML)
            env_file.write_text("ARCHIVIST_KEEP=7\n")

            env = {**clean_env(), "ARCHIVIST_KEEP": "2"}
            with patch.dict(os.environ, env, clear=True):
                loaded = ProgramStore.load(config_file, env_file=env_file)

            assert loaded.settings.keep == 2

    def test_invalid_env_value(self) -> None:
        """Test that a non-numeric override is a configuration error."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_file = Path(temp_dir) / "programs.yaml"
            config_file.write_text(PROGRAMS_YAML)

            env = {**clean_env(), "ARCHIVIST_MIN_FREE_MB": "lots"}
            with patch.dict(os.environ, env, clear=True):
                with pytest.raises(ConfigurationError, match="ARCHIVIST_MIN_FREE_MB"):
                    ProgramStore.load(config_file)

    def test_missing_env_file(self) -> None:
        """Test that a missing .env file is reported."""
        with pytest.raises(ConfigurationError, match="Environment file not found"):
            ProgramStore.load_env(Path("/nonexistent/.env"))


class TestBackupProgram:
    """Test cases for BackupProgram validation."""

    def test_defaults(self) -> None:
        """Test the optional fields of a minimal program."""
        program = BackupProgram(name=" A ", source_path="/s", backup_path="/d")

        assert program.name == "A"
        assert program.source_path == Path("/s")
        assert program.profile_path is None
        assert program.config_patterns == []
        assert program.archive_type == "zip"
        assert program.compression_level == 6

    def test_empty_required_field(self) -> None:
        """Test that empty required fields are rejected."""
        with pytest.raises(InvalidProgramError, match="Required field 'source_path'"):
            BackupProgram(name="A", source_path="", backup_path="/d")

    def test_empty_profile_means_none(self) -> None:
        """Test that an empty profile path is treated as absent."""
        program = BackupProgram(name="A", source_path="/s", backup_path="/d", profile_path="")

        assert program.profile_path is None

    def test_patterns_must_be_a_list(self) -> None:
        """Test that a single string is not accepted as a pattern list."""
        with pytest.raises(InvalidProgramError, match="must be a list of globs"):
            BackupProgram(name="A", source_path="/s", backup_path="/d", config_patterns="*.ini")

    def test_invalid_archive_type(self) -> None:
        """Test that unknown archive types are rejected."""
        with pytest.raises(InvalidProgramError, match="Unsupported archive_type 'rar'"):
            BackupProgram(name="A", source_path="/s", backup_path="/d", archive_type="rar")

    @pytest.mark.parametrize("level", [-1, 10, "high"])
    def test_invalid_compression_level(self, level: object) -> None:
        """Test that compression levels outside 0-9 are rejected."""
        with pytest.raises(InvalidProgramError, match="compression_level"):
            BackupProgram(name="A", source_path="/s", backup_path="/d", compression_level=level)

    def test_dict_round_trip(self) -> None:
        """Test that to_dict output can be loaded again."""
        program = BackupProgram(
            name="A",
            source_path="/s",
            backup_path="/d",
            profile_path="/p",
            config_patterns=["*.ini"],
            archive_type="tar.gz",
            compression_level=3,
        )

        assert BackupProgram.from_dict(program.to_dict()) == program

    def test_from_dict_rejects_non_mapping(self) -> None:
        """Test that a program entry has to be a mapping."""
        with pytest.raises(InvalidProgramError, match="must be a mapping"):
            BackupProgram.from_dict(["A"])  # type: ignore[arg-type]


class TestEngineSettings:
    """Test cases for EngineSettings validation."""

    def test_defaults(self) -> None:
        """Test the default engine settings."""
        settings = EngineSettings()

        assert settings.keep == 5
        assert settings.min_free_mb == 500
        assert settings.copy_retries == 3
        assert settings.use_lock is True

    @pytest.mark.parametrize(
        ("field_name", "value", "message"),
        [
            ("keep", 0, "keep must be at least 1"),
            ("min_free_mb", -1, "must not be negative"),
            ("copy_retries", 0, "copy_retries must be at least 1"),
            ("keep", "many", "Invalid engine setting"),
            ("log_level", "verbose", "Invalid log level"),
        ],
    )
    def test_invalid_values(self, field_name: str, value: object, message: str) -> None:
        """Test that invalid settings raise ConfigurationError."""
        with pytest.raises(ConfigurationError, match=message):
            EngineSettings(**{field_name: value})

    def test_from_dict_ignores_unknown_keys(self) -> None:
        """Test that unknown keys in the settings section are ignored."""
        settings = EngineSettings.from_dict({"keep": 2, "colour": "blue"})

        assert settings.keep == 2

    def test_env_overrides(self) -> None:
        """Test converting ARCHIVIST_* variables."""
        settings = EngineSettings().with_env_overrides(
            {"ARCHIVIST_KEEP": "4", "ARCHIVIST_MIN_FREE_MB": "", "OTHER": "x"},
        )

        assert settings.keep == 4
        assert settings.min_free_mb == 500

    def test_env_override_not_an_integer(self) -> None:
        """Test that a non-numeric keep override raises InvalidEnvVariableError."""
        with pytest.raises(InvalidEnvVariableError, match="ARCHIVIST_KEEP must be an integer"):
            EngineSettings().with_env_overrides({"ARCHIVIST_KEEP": "five"})
