"""Shared types and utilities for CLI commands.

This module provides the options, enums and helpers used across
several command modules to avoid code duplication.
"""

import logging
import signal
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer

from scratchctl.core.config import (
    CleanupConfig,
    ConfigError,
    apply_overrides,
    load_config_or_default,
)
from scratchctl.core.ratelimit import RateLimiter
from scratchctl.utils.formatting import console, print_error

# Options shared by every command that touches the filesystem.
StatLimitOption = Annotated[
    float | None,
    typer.Option(
        "--stat-limit",
        "-S",
        help="Rate limit on lstat() calls, in calls/sec.",
    ),
]
UnlinkLimitOption = Annotated[
    float | None,
    typer.Option(
        "--unlink-limit",
        "-U",
        help="Rate limit on unlink() and rmdir() calls, in calls/sec.",
    ),
]
RateReportOption = Annotated[
    bool,
    typer.Option("--rate-report", "-R", help="Always show a final report of i/o rates."),
]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Read settings from this file."),
]
KilobytesOption = Annotated[
    bool,
    typer.Option("--kilobytes", "-k", help="Show sizes in KiB."),
]
HumanReadableOption = Annotated[
    bool,
    typer.Option("--human-readable", "-H", help="Show sizes in a size-appropriate unit."),
]


class InteractiveMode(str, Enum):
    """When the remove command asks before removing."""

    NEVER = "never"
    ONCE = "once"
    ALWAYS = "always"


def load_settings(config_path: Path | None, **overrides: object) -> CleanupConfig:
    """Load the config file and apply command-line overrides.

    Exits with code 2 if the file or an option value is invalid.
    """
    try:
        config = load_config_or_default(config_path)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=2) from e
    return override_settings(config, **overrides)


def override_settings(config: CleanupConfig, **overrides: object) -> CleanupConfig:
    """Apply non-None command-line overrides, exiting with code 2 if one is invalid."""
    try:
        return apply_overrides(config, **overrides)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=2) from e


@contextmanager
def profile_on_signal(*limiters: RateLimiter) -> Iterator[None]:
    """Print the rate profile of limiters whenever SIGUSR1 arrives."""

    def _handler(signum: int, frame: object) -> None:
        for limiter in limiters:
            console.print(limiter.profile(logging.INFO))

    previous = signal.signal(signal.SIGUSR1, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGUSR1, previous)


def report_rates(*limiters: RateLimiter, show: bool = False) -> None:
    """Log the rate profile of limiters, printing it too if show is set."""
    for limiter in limiters:
        message = limiter.profile(logging.DEBUG)
        if show:
            console.print(f"[muted]{message}[/]")
