"""CLI commands for scratchctl.

This package contains all subcommand implementations.
"""

from scratchctl.cli.commands import clean, config, drain, du, rm

__all__ = ["clean", "config", "drain", "du", "rm"]
