"""Clean command implementation.

Scans scratch directories, quarantines every subdirectory whose whole
content is old enough, then removes the quarantined directories.
Nothing is renamed or removed without --do-it.
"""

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from scratchctl.cli.types import (
    ConfigOption,
    RateReportOption,
    StatLimitOption,
    UnlinkLimitOption,
    load_settings,
    override_settings,
    profile_on_signal,
    report_rates,
)
from scratchctl.core.config import (
    ConfigError,
    EpochBasis,
    SpecialFilePolicy,
    TimestampPolicy,
)
from scratchctl.filesystem.cleaner import CleanupEngine, RunReport
from scratchctl.utils.formatting import (
    console,
    format_size,
    outcome_label,
    print_error,
    print_info,
    print_success,
    print_warning,
)


def clean(
    paths: Annotated[
        list[str],
        typer.Argument(help="Directories to clean (their contents, not themselves)."),
    ],
    do_it: Annotated[
        bool,
        typer.Option(
            "--do-it",
            "-D",
            help="Actually rename and remove; without it this is a dry run.",
        ),
    ] = False,
    keep_going: Annotated[
        bool,
        typer.Option("--keep-going", "-k", help="Continue with the next path after a failure."),
    ] = False,
    days: Annotated[
        int | None,
        typer.Option("--days", "-d", help="Minimum age in days (default: 30)."),
    ] = None,
    epoch: Annotated[
        EpochBasis | None,
        typer.Option("--epoch", help="Count the age threshold back from this point."),
    ] = None,
    timestamp: Annotated[
        TimestampPolicy | None,
        typer.Option("--timestamp", "-t", help="Timestamp(s) used for the age test."),
    ] = None,
    include_root: Annotated[
        bool,
        typer.Option("--include-root", "-r", help="Also remove items owned by root."),
    ] = False,
    ignore_sockets: Annotated[
        bool,
        typer.Option("--ignore-sockets", "-s", help="Sockets do not keep their directory."),
    ] = False,
    ignore_pipes: Annotated[
        bool,
        typer.Option("--ignore-pipes", "-p", help="FIFOs do not keep their directory."),
    ] = False,
    exclude_path: Annotated[
        list[str] | None,
        typer.Option("--exclude-path", "-e", help="Never remove this path or its contents."),
    ] = None,
    exclude_user: Annotated[
        list[str] | None,
        typer.Option("--exclude-user", "-E", help="Never remove items owned by this user."),
    ] = None,
    exclude_group: Annotated[
        list[str] | None,
        typer.Option("--exclude-group", "-G", help="Never remove items owned by this group."),
    ] = None,
    work_log: Annotated[
        Path | None,
        typer.Option("--work-log", "-w", help="Keep the work log in this file."),
    ] = None,
    keep_work_log: Annotated[
        bool,
        typer.Option("--keep-work-log", "-K", help="Do not delete the work log at exit."),
    ] = False,
    work_log_only: Annotated[
        bool,
        typer.Option("--work-log-only", "-o", help="Stop after building the work log."),
    ] = False,
    allow_files: Annotated[
        bool,
        typer.Option("--allow-files", "-F", help="Accept plain files as arguments."),
    ] = False,
    stat_limit: StatLimitOption = None,
    unlink_limit: UnlinkLimitOption = None,
    rate_report: RateReportOption = False,
    config_path: ConfigOption = None,
) -> None:
    """Remove old content from scratch directories."""
    base = load_settings(config_path)
    special_files = _special_file_policy(ignore_sockets, ignore_pipes)
    config = override_settings(
        base,
        days=days,
        epoch=epoch,
        timestamp=timestamp,
        special_files=special_files,
        exclude_root=False if include_root else None,
        exclude_paths=_merge(base.exclude_paths, exclude_path),
        exclude_users=_merge(base.exclude_users, exclude_user),
        exclude_groups=_merge(base.exclude_groups, exclude_group),
        dry_run=False if do_it else None,
        keep_going=True if keep_going else None,
        work_log_only=True if work_log_only else None,
        allow_files=True if allow_files else None,
        work_log=str(work_log) if work_log is not None else None,
        keep_work_log=True if keep_work_log else None,
        stat_limit=stat_limit,
        unlink_limit=unlink_limit,
    )

    try:
        engine = CleanupEngine.from_config(config)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=2) from e

    engine.log_settings()
    with profile_on_signal(engine.stat_limiter, engine.unlink_limiter):
        report = engine.run(paths)
    report_rates(engine.stat_limiter, engine.unlink_limiter, show=rate_report)

    _print_report(report)
    if report.failed:
        raise typer.Exit(code=1)


# === Private helper functions ===


def _special_file_policy(ignore_sockets: bool, ignore_pipes: bool) -> SpecialFilePolicy | None:
    """Map the ignore flags onto a policy; None keeps the configured one."""
    if ignore_sockets and ignore_pipes:
        return SpecialFilePolicy.NEITHER
    if ignore_sockets:
        return SpecialFilePolicy.FIFOS
    if ignore_pipes:
        return SpecialFilePolicy.SOCKETS
    return None


def _merge(configured: tuple[str, ...], extra: list[str] | None) -> tuple[str, ...] | None:
    """Add command-line values to configured ones; None keeps the configured ones."""
    if not extra:
        return None
    return (*configured, *extra)


def _print_report(report: RunReport) -> None:
    """Display what happened to each argument and each queued directory."""
    for outcome in report.outcomes:
        if outcome.error is not None:
            print_error(f"{outcome.path}: {outcome.error}")
        elif outcome.is_file and outcome.removed:
            verb = "Would remove" if report.dry_run else "Removed"
            print_info(f"{verb} file {outcome.path}")

    drained = report.drained
    if drained:
        title = "Cleanup Results (dry-run)" if report.dry_run else "Cleanup Results"
        table = Table(title=title, show_lines=False)
        table.add_column("Directory", style="bold")
        table.add_column("Quarantined As", style="dim")
        table.add_column("Status", width=10)
        table.add_column("Details", style="dim")

        for result in drained:
            status = outcome_label(result.status, dry_run=result.dry_run)
            if result.dry_run:
                detail = "Would remove"
            elif result.failed:
                detail = result.error or "Unknown error"
            else:
                detail = ""
            table.add_row(
                result.entry.original_path, result.entry.quarantine_path, status, detail
            )
        console.print(table)

    queued = sum(outcome.queued for outcome in report.outcomes)
    failed = sum(1 for result in drained if result.failed)
    if report.stopped_early:
        print_warning("Stopped after a failure; use --keep-going to continue past errors.")
    if report.dry_run:
        print_info(f"Dry-run: {queued} directory(ies) would be removed.")
        print_info("Use --do-it to remove them.")
    elif not drained:
        print_info(f"Nothing removed ({queued} directory(ies) queued).")
    elif failed:
        print_warning(f"{len(drained) - failed} removed, {failed} failed")
    else:
        freed = format_size(report.bytes_freed)
        print_success(f"Removed {len(drained)} directory(ies), freeing {freed}.")
