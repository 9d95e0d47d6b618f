"""Drain command implementation.

Resumes an interrupted cleanup by removing the directories still queued
in an on-disk work log kept with `clean --work-log ... --keep-work-log`.
"""

from pathlib import Path
from typing import Annotated

import typer

from scratchctl.cli.types import (
    ConfigOption,
    RateReportOption,
    StatLimitOption,
    UnlinkLimitOption,
    load_settings,
    profile_on_signal,
    report_rates,
)
from scratchctl.core.config import ConfigError
from scratchctl.filesystem.cleaner import CleanupEngine
from scratchctl.filesystem.worklog import Worklog, WorklogError
from scratchctl.utils.formatting import (
    console,
    format_size,
    print_error,
    print_info,
    print_success,
    print_warning,
)


def drain(
    work_log: Annotated[
        Path,
        typer.Argument(help="Work log file to drain."),
    ],
    do_it: Annotated[
        bool,
        typer.Option("--do-it", "-D", help="Actually remove; without it this is a dry run."),
    ] = False,
    keep_work_log: Annotated[
        bool,
        typer.Option("--keep-work-log", "-K", help="Do not delete the work log once drained."),
    ] = False,
    stat_limit: StatLimitOption = None,
    unlink_limit: UnlinkLimitOption = None,
    rate_report: RateReportOption = False,
    config_path: ConfigOption = None,
) -> None:
    """Remove the directories queued in a saved work log."""
    config = load_settings(
        config_path,
        dry_run=False if do_it else None,
        stat_limit=stat_limit,
        unlink_limit=unlink_limit,
    )

    try:
        engine = CleanupEngine.from_config(config)
        worklog = Worklog(work_log, reset=False)
    except (ConfigError, WorklogError) as e:
        print_error(str(e))
        raise typer.Exit(code=2) from e

    # a dry run leaves the queue untouched, so the file is always kept
    keep = keep_work_log or config.dry_run
    try:
        pending = len(worklog)
        if pending == 0:
            print_info(f"Work log is empty: {work_log}")
            return
        print_info(f"Draining {pending} queued directory(ies) from {work_log}")
        with profile_on_signal(engine.stat_limiter, engine.unlink_limiter):
            results = engine.drain(worklog)
    except WorklogError as e:
        print_error(str(e))
        keep = True
        raise typer.Exit(code=1) from e
    finally:
        worklog.close(keep=keep)
        report_rates(engine.stat_limiter, engine.unlink_limiter, show=rate_report)

    for result in results:
        if result.dry_run:
            console.print(f"[preview]Would remove[/] {result.entry.quarantine_path}")
        elif result.failed:
            print_error(f"{result.entry.quarantine_path}: {result.error}")

    failed = sum(1 for result in results if result.failed)
    if config.dry_run:
        print_info(f"Dry-run: {len(results)} directory(ies) would be removed.")
    elif failed:
        print_warning(f"{len(results) - failed} removed, {failed} failed")
        raise typer.Exit(code=1)
    else:
        freed = format_size(engine.bytes_freed)
        print_success(f"Removed {len(results)} directory(ies), freeing {freed}.")
