"""Disk usage command implementation.

Reports the apparent size of directory trees, probing at a limited rate
so that sizing a shared scratch area does not overload it.
"""

import os
from typing import Annotated

import typer
from rich.table import Table

from scratchctl.cli.types import (
    HumanReadableOption,
    KilobytesOption,
    RateReportOption,
    StatLimitOption,
    override_settings,
    profile_on_signal,
    report_rates,
)
from scratchctl.core.config import CleanupConfig
from scratchctl.core.ratelimit import RateLimiter
from scratchctl.filesystem.probe import Prober
from scratchctl.filesystem.usage import DiskUsage
from scratchctl.utils.formatting import console, format_size, print_error


def du(
    paths: Annotated[
        list[str],
        typer.Argument(help="Files or directories to measure."),
    ],
    kilobytes: KilobytesOption = False,
    human_readable: HumanReadableOption = False,
    total: Annotated[
        bool,
        typer.Option("--total", "-c", help="Also show a grand total."),
    ] = False,
    stat_limit: StatLimitOption = None,
    rate_report: RateReportOption = False,
) -> None:
    """Show the total size of files and directories."""
    limits = override_settings(CleanupConfig(), stat_limit=stat_limit)
    prober = Prober(RateLimiter("stat", limits.stat_limit))
    usage = DiskUsage(prober)

    table = Table(show_header=True, show_lines=False, box=None)
    table.add_column("Size", justify="right", no_wrap=True)
    table.add_column("Path", style="bold")

    grand_total = 0
    failed = False
    with profile_on_signal(prober.limiter):
        for raw in paths:
            path = os.path.realpath(raw)
            try:
                size = usage.measure(path)
            except OSError as e:
                print_error(f"{path}: {e.strerror or e}")
                failed = True
                continue
            grand_total += size
            table.add_row(
                format_size(size, human_readable=human_readable, kilobytes=kilobytes), path
            )

    if total:
        table.add_row(
            format_size(grand_total, human_readable=human_readable, kilobytes=kilobytes),
            "total",
            style="bold_header",
        )
    if table.row_count:
        console.print(table)
    report_rates(prober.limiter, show=rate_report)

    if failed:
        raise typer.Exit(code=1)
