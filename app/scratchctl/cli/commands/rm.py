"""Remove command implementation.

An rm-like command built on the same rate-limited removal the cleanup
uses, so that ad hoc removals on a shared filesystem are throttled too.
"""

import os
from typing import Annotated

import typer

from scratchctl.cli.types import (
    HumanReadableOption,
    InteractiveMode,
    KilobytesOption,
    RateReportOption,
    StatLimitOption,
    UnlinkLimitOption,
    override_settings,
    profile_on_signal,
    report_rates,
)
from scratchctl.core.config import CleanupConfig
from scratchctl.core.ratelimit import RateLimiter
from scratchctl.filesystem.probe import Prober
from scratchctl.filesystem.remover import RemoveResult, Remover
from scratchctl.utils.formatting import console, format_size, print_error

PROMPT_PREFIX = "scratchctl rm"


def rm(
    paths: Annotated[
        list[str],
        typer.Argument(help="Files or directories to remove."),
    ],
    recursive: Annotated[
        bool,
        typer.Option("--recursive", "-r", help="Remove directories and their contents."),
    ] = False,
    interactive: Annotated[
        InteractiveMode,
        typer.Option(
            "--interactive",
            help="When to prompt before removing.",
            case_sensitive=False,
        ),
    ] = InteractiveMode.NEVER,
    always: Annotated[
        bool,
        typer.Option("-i", help="Prompt before every removal (--interactive=always)."),
    ] = False,
    once: Annotated[
        bool,
        typer.Option(
            "-I",
            help="Prompt once before removing recursively or more than two arguments.",
        ),
    ] = False,
    summary: Annotated[
        bool,
        typer.Option("--summary", "-s", help="Show how much space was freed."),
    ] = False,
    kilobytes: KilobytesOption = False,
    human_readable: HumanReadableOption = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show what would be removed."),
    ] = False,
    stat_limit: StatLimitOption = None,
    unlink_limit: UnlinkLimitOption = None,
    rate_report: RateReportOption = False,
) -> None:
    """Remove files or directories at a limited rate."""
    limits = override_settings(CleanupConfig(), stat_limit=stat_limit, unlink_limit=unlink_limit)
    mode = _interactive_mode(interactive, always, once)

    if mode == InteractiveMode.ONCE and not dry_run:
        question = None
        if recursive:
            question = "remove all arguments recursively"
        elif len(paths) >= 3:
            question = "remove all arguments"
        if question is not None and not _confirm(question):
            return

    prober = Prober(RateLimiter("stat", limits.stat_limit))
    remover = Remover(
        prober,
        RateLimiter("unlink", limits.unlink_limit),
        dry_run=dry_run,
        track_bytes=summary,
        prompt=_confirm,
    )

    failed = False
    with profile_on_signal(prober.limiter, remover.limiter):
        for raw in paths:
            result = _remove_one(remover, prober, raw, recursive, mode)
            if result.failed:
                print_error(f"cannot remove `{raw}': {result.error}")
                failed = True
                break

    if summary:
        size = format_size(
            remover.bytes_freed, human_readable=human_readable, kilobytes=kilobytes
        )
        console.print(f"{PROMPT_PREFIX}: removed {size}")
    report_rates(prober.limiter, remover.limiter, show=rate_report)

    if failed:
        raise typer.Exit(code=1)


# === Private helper functions ===


def _interactive_mode(interactive: InteractiveMode, always: bool, once: bool) -> InteractiveMode:
    """-i and -I take precedence over --interactive."""
    if always:
        return InteractiveMode.ALWAYS
    if once:
        return InteractiveMode.ONCE
    return interactive


def _confirm(message: str) -> bool:
    return typer.confirm(f"{PROMPT_PREFIX}: {message}?", default=False)


def _remove_one(
    remover: Remover,
    prober: Prober,
    raw: str,
    recursive: bool,
    mode: InteractiveMode,
) -> RemoveResult:
    path = os.path.abspath(raw)
    if mode == InteractiveMode.ALWAYS:
        return remover.remove_interactive(path, recursive=recursive)

    if not recursive and prober.is_directory(path):
        return remover.remove_interactive(path, recursive=False)
    return remover.remove(path)
