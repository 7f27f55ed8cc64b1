"""Backup program definitions and engine settings."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from archivist.backup.exceptions import ConfigurationError, InvalidProgramError
from archivist.exceptions import InvalidEnvVariableError

ARCHIVE_TYPES = ("zip", "tar.gz")
DEFAULT_KEEP = 5
DEFAULT_MIN_FREE_MB = 500
MAX_COMPRESSION_LEVEL = 9
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

ENV_PREFIX = "ARCHIVIST_"


@dataclass
class BackupProgram:
    """A named backup definition.

    The engine only reads programs; creating and editing them is up to the
    caller.
    """

    # Required fields
    name: str
    source_path: Path
    backup_path: Path

    # Optional fields with defaults
    profile_path: Path | None = None
    config_patterns: list[str] = field(default_factory=list)
    archive_type: str = "zip"
    compression_level: int = 6

    def __post_init__(self) -> None:
        """Validate the definition after initialization."""
        self._validate_required_fields()
        self._normalize_paths()
        self._validate_archive_options()

    def _validate_required_fields(self) -> None:
        for field_name in ("name", "source_path", "backup_path"):
            value = getattr(self, field_name)
            if value is None or not str(value).strip():
                error_msg = f"Required field '{field_name}' cannot be empty"
                raise InvalidProgramError(error_msg)

    def _normalize_paths(self) -> None:
        self.name = str(self.name).strip()
        self.source_path = Path(self.source_path)
        self.backup_path = Path(self.backup_path)
        if self.profile_path is not None and str(self.profile_path).strip():
            self.profile_path = Path(self.profile_path)
        else:
            self.profile_path = None

        if self.config_patterns is None:
            self.config_patterns = []
        elif isinstance(self.config_patterns, str):
            error_msg = f"config_patterns of '{self.name}' must be a list of globs"
            raise InvalidProgramError(error_msg)
        else:
            self.config_patterns = [str(p) for p in self.config_patterns if str(p)]

    def _validate_archive_options(self) -> None:
        if self.archive_type not in ARCHIVE_TYPES:
            error_msg = (
                f"Unsupported archive_type '{self.archive_type}' for '{self.name}', "
                f"expected one of {', '.join(ARCHIVE_TYPES)}"
            )
            raise InvalidProgramError(error_msg)
        try:
            level = int(self.compression_level)
        except (TypeError, ValueError) as e:
            error_msg = f"Invalid compression_level for '{self.name}': {e}"
            raise InvalidProgramError(error_msg) from e
        if not 0 <= level <= MAX_COMPRESSION_LEVEL:
            error_msg = (
                f"compression_level for '{self.name}' must be between 0 and "
                f"{MAX_COMPRESSION_LEVEL}, got {level}"
            )
            raise InvalidProgramError(error_msg)
        self.compression_level = level

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BackupProgram":
        """Build a program from a raw mapping such as a parsed YAML entry.

        Raises:
            InvalidProgramError: If the mapping is not a valid program definition

        """
        if not isinstance(data, Mapping):
            error_msg = f"Program definition must be a mapping, got {type(data).__name__}"
            raise InvalidProgramError(error_msg)

        missing = [key for key in ("name", "source_path", "backup_path") if not data.get(key)]
        if missing:
            error_msg = f"Missing required program field(s): {', '.join(missing)}"
            raise InvalidProgramError(error_msg)

        return cls(
            name=data["name"],
            source_path=data["source_path"],
            backup_path=data["backup_path"],
            profile_path=data.get("profile_path"),
            config_patterns=data.get("config_patterns") or [],
            archive_type=data.get("archive_type") or "zip",
            compression_level=data.get("compression_level", 6),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the program back to plain values."""
        return {
            "name": self.name,
            "source_path": str(self.source_path),
            "backup_path": str(self.backup_path),
            "profile_path": str(self.profile_path) if self.profile_path else None,
            "config_patterns": list(self.config_patterns),
            "archive_type": self.archive_type,
            "compression_level": self.compression_level,
        }


@dataclass
class EngineSettings:
    """Settings shared by every run of the backup engine."""

    keep: int = DEFAULT_KEEP
    min_free_mb: int = DEFAULT_MIN_FREE_MB
    copy_retries: int = 3
    copy_retry_delay: float = 0.5
    use_lock: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        try:
            self.keep = int(self.keep)
            self.min_free_mb = int(self.min_free_mb)
            self.copy_retries = int(self.copy_retries)
            self.copy_retry_delay = float(self.copy_retry_delay)
        except (TypeError, ValueError) as e:
            error_msg = f"Invalid engine setting: {e}"
            raise ConfigurationError(error_msg) from e

        if self.keep < 1:
            error_msg = f"keep must be at least 1, got {self.keep}"
            raise ConfigurationError(error_msg)
        if self.min_free_mb < 0:
            error_msg = f"min_free_mb must not be negative, got {self.min_free_mb}"
            raise ConfigurationError(error_msg)
        if self.copy_retries < 1:
            error_msg = f"copy_retries must be at least 1, got {self.copy_retries}"
            raise ConfigurationError(error_msg)
        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            error_msg = f"Invalid log level: {self.log_level}"
            raise ConfigurationError(error_msg)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "EngineSettings":
        """Build settings from a mapping, ignoring unknown keys."""
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            error_msg = "The 'settings' section must be a mapping"
            raise ConfigurationError(error_msg)
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

    def with_env_overrides(self, env: Mapping[str, str | None]) -> "EngineSettings":
        """Return a copy updated from ``ARCHIVIST_*`` variables in ``env``.

        Raises:
            InvalidEnvVariableError: If a variable cannot be converted

        """
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key in ("keep", "min_free_mb", "log_level"):
            env_key = f"{ENV_PREFIX}{key.upper()}"
            raw = env.get(env_key)
            if raw is None or raw == "":
                continue
            if key == "log_level":
                values[key] = raw
                continue
            try:
                values[key] = int(raw)
            except ValueError as e:
                error_msg = f"{env_key} must be an integer, got '{raw}'"
                raise InvalidEnvVariableError(error_msg) from e
        return EngineSettings(**values)


@dataclass
class ProgramFile:
    """The parsed content of a program file."""

    programs: list[BackupProgram]
    settings: EngineSettings


class ProgramStore:
    """Loads program definitions and settings from YAML/JSON files."""

    @staticmethod
    def _read_yaml(config_path: Path) -> Any:
        try:
            with config_path.open(encoding="utf-8") as f:
                return yaml.safe_load(f)
        except FileNotFoundError as e:
            error_msg = f"Configuration file not found: {config_path}"
            raise ConfigurationError(error_msg) from e
        except yaml.YAMLError as e:
            error_msg = f"Invalid configuration file format: {e}"
            raise ConfigurationError(error_msg) from e
        except OSError as e:
            error_msg = f"Error loading configuration: {e}"
            raise ConfigurationError(error_msg) from e

    @classmethod
    def load(
        cls,
        config_path: Path,
        env_file: Path | None = None,
    ) -> ProgramFile:
        """Load programs and settings from ``config_path``.

        Args:
            config_path: YAML (or JSON) file with ``programs`` and ``settings``
            env_file: Optional ``.env`` file with ``ARCHIVIST_*`` overrides

        Returns:
            Parsed program file

        Raises:
            ConfigurationError: If the file cannot be read or is invalid

        """
        data = cls._read_yaml(config_path)

        if data is None:
            raw_programs: Any = []
            raw_settings: Any = None
        elif isinstance(data, list):
            raw_programs, raw_settings = data, None
        elif isinstance(data, Mapping):
            raw_programs = data.get("programs") or []
            raw_settings = data.get("settings")
        else:
            error_msg = f"Unexpected top-level structure in {config_path}"
            raise ConfigurationError(error_msg)

        if not isinstance(raw_programs, list):
            error_msg = "'programs' must be a list"
            raise ConfigurationError(error_msg)

        programs = [BackupProgram.from_dict(entry) for entry in raw_programs]
        names = [program.name for program in programs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            error_msg = f"Duplicate program name(s): {', '.join(duplicates)}"
            raise ConfigurationError(error_msg)

        settings = EngineSettings.from_dict(raw_settings)
        try:
            settings = settings.with_env_overrides(cls.load_env(env_file))
        except InvalidEnvVariableError as e:
            raise ConfigurationError(str(e), original_error=e) from e

        return ProgramFile(programs=programs, settings=settings)

    @staticmethod
    def load_env(env_file: Path | None = None) -> dict[str, str | None]:
        """Merge the process environment with the optional ``.env`` file.

        Values from the process environment win over the file.
        """
        merged: dict[str, str | None] = {}
        if env_file is not None:
            if not env_file.exists():
                error_msg = f"Environment file not found: {env_file}"
                raise ConfigurationError(error_msg)
            merged.update(dotenv_values(env_file))
        merged.update(
            {key: value for key, value in os.environ.items() if key.startswith(ENV_PREFIX)},
        )
        return merged
