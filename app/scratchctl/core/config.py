"""Cleanup configuration and settings.

This module provides the configuration model and I/O functions for the
cleanup engine. Every option the command line accepts can also be set
in ~/.config/scratchctl/config.toml; command-line values win.
"""

import logging
import os
import tomllib
from enum import Enum
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Annotated

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from scratchctl.core.paths import get_config_path
from scratchctl.core.ratelimit import MINIMUM_RATE_LIMIT

logger = logging.getLogger(__name__)


class EpochBasis(str, Enum):
    """Point in time the age threshold is counted back from."""

    NOW = "now"
    MIDNIGHT = "midnight"
    NOON = "noon"


class TimestampPolicy(str, Enum):
    """Which timestamp(s) gate the age test.

    Attributes:
        MTIME: Last-modified time only.
        ATIME: Last-accessed time only.
        MAX: The newer of the two.
    """

    MTIME = "mtime"
    ATIME = "atime"
    MAX = "max"


class SpecialFilePolicy(str, Enum):
    """Which special file kinds short-circuit directory removal.

    Attributes:
        BOTH: Sockets and FIFOs both keep their directory.
        SOCKETS: Only sockets do (FIFOs are ignored).
        FIFOS: Only FIFOs do (sockets are ignored).
        NEITHER: Neither kind is considered.
    """

    BOTH = "both"
    SOCKETS = "sockets"
    FIFOS = "fifos"
    NEITHER = "neither"


def _validate_rate_limit(value: float) -> float:
    if value != 0.0 and value < MINIMUM_RATE_LIMIT:
        msg = f"rate limit must be 0 (unlimited) or at least {MINIMUM_RATE_LIMIT} calls/sec"
        raise ValueError(msg)
    return value


class CleanupConfig(BaseModel):
    """Immutable settings for one cleanup run.

    Attributes:
        days: Minimum age in days for an entity to be eligible.
        epoch: Point the age threshold is counted back from.
        timestamp: Timestamp(s) used for the age test.
        exclude_root: Treat anything owned by uid 0 or gid 0 as ineligible.
        special_files: Which special file kinds short-circuit removal.
        exclude_paths: Paths that are never removed, nor anything inside them.
        exclude_users: User names or uids whose entities are never removed.
        exclude_groups: Group names or gids whose entities are never removed.
        dry_run: Report what would happen without renaming or removing.
        keep_going: Continue with the next path after a failure.
        work_log_only: Stop after building the work log.
        allow_files: Accept plain files as top-level arguments.
        work_log: On-disk work log path (None = in memory).
        keep_work_log: Keep the on-disk work log when the run ends.
        stat_limit: Target rate for lstat() probes (0 = unlimited).
        unlink_limit: Target rate for unlink()/rmdir() (0 = unlimited).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    days: Annotated[int, Field(ge=0, description="Minimum age in days")] = 30
    epoch: EpochBasis = EpochBasis.NOW
    timestamp: TimestampPolicy = TimestampPolicy.MAX
    exclude_root: bool = True
    special_files: SpecialFilePolicy = SpecialFilePolicy.BOTH
    exclude_paths: tuple[str, ...] = ()
    exclude_users: tuple[str, ...] = ()
    exclude_groups: tuple[str, ...] = ()
    dry_run: bool = True
    keep_going: bool = False
    work_log_only: bool = False
    allow_files: bool = False
    work_log: str | None = None
    keep_work_log: bool = False
    stat_limit: Annotated[float, Field(ge=0.0)] = 0.0
    unlink_limit: Annotated[float, Field(ge=0.0)] = 0.0

    @field_validator("stat_limit", "unlink_limit")
    @classmethod
    def validate_rate_limit(cls, v: float) -> float:
        """Reject rate limits that are too small to be meaningful."""
        return _validate_rate_limit(v)

    @field_validator("exclude_users", "exclude_groups", mode="before")
    @classmethod
    def validate_owner_ids(cls, v: object) -> object:
        """Accept integers in owner lists, storing them as strings."""
        if isinstance(v, list | tuple):
            return tuple(str(item) for item in v)
        return v


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigNotFoundError(ConfigError):
    """Raised when the config file is not found."""


class ConfigParseError(ConfigError):
    """Raised when the config file cannot be parsed."""


def load_config(path: Path | None = None) -> CleanupConfig:
    """Load cleanup configuration from a TOML file.

    Args:
        path: Path to the config file. If None, uses the default config path.

    Returns:
        Validated CleanupConfig object.

    Raises:
        ConfigNotFoundError: If the config file doesn't exist.
        ConfigParseError: If the TOML syntax is invalid.
        ConfigError: If the content doesn't match the schema.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        raise ConfigNotFoundError(f"Config not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Invalid TOML syntax: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config: {e}") from e

    try:
        return CleanupConfig.model_validate(data)
    except (ValueError, ValidationError) as e:
        raise ConfigError(f"Invalid config content: {e}") from e


def load_config_or_default(path: Path | None = None) -> CleanupConfig:
    """Load the config file, falling back to defaults if there is none.

    Raises:
        ConfigError: If the file exists but is invalid.
    """
    try:
        return load_config(path)
    except ConfigNotFoundError:
        logger.debug("No config file, using defaults")
        return CleanupConfig()


def apply_overrides(config: CleanupConfig, **overrides: object) -> CleanupConfig:
    """Return a validated copy of config with non-None overrides applied.

    Raises:
        ConfigError: If an override value is invalid.
    """
    changes = {key: value for key, value in overrides.items() if value is not None}
    if not changes:
        return config
    try:
        return CleanupConfig.model_validate({**config.model_dump(), **changes})
    except (ValueError, ValidationError) as e:
        raise ConfigError(f"Invalid option: {e}") from e


def save_config(config: CleanupConfig, path: Path | None = None) -> Path:
    """Save cleanup configuration to a TOML file.

    The file is written atomically by first writing to a temporary file
    and then using os.replace() for atomic rename.

    Args:
        config: The CleanupConfig object to save.
        path: Path to save the config. If None, uses the default config path.

    Returns:
        Path where the config was saved.

    Raises:
        ConfigError: If the file cannot be written.
    """
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = config_to_dict(config)

    tmp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="wb",
            dir=config_path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(data, f)
        os.replace(str(tmp_path), str(config_path))
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise ConfigError(f"Failed to write config: {e}") from e

    return config_path


def config_to_dict(config: CleanupConfig) -> dict[str, object]:
    """Convert CleanupConfig to a dictionary for TOML serialization.

    TOML has no null, so an unset work log is left out.
    """
    data = config.model_dump(mode="json")
    return {
        key: list(value) if isinstance(value, tuple) else value
        for key, value in data.items()
        if value is not None
    }
