"""Rich console formatting utilities.

Provides consistent formatting for CLI output using Rich.
"""

import sys

from rich.console import Console

from scratchctl.core.theme import get_theme
from scratchctl.filesystem.models import RemoveStatus


def _detect_color_system() -> str | None:
    """Detect the best color system for the current terminal.

    Returns "truecolor" for interactive terminals to enable full hex color support,
    None otherwise to let Rich auto-detect.
    """
    if sys.stdout.isatty():
        return "truecolor"
    return None


# Shared console instances (theme loaded once at import)
console = Console(theme=get_theme(), color_system=_detect_color_system())
err_console = Console(theme=get_theme(), stderr=True, color_system=_detect_color_system())


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[info]{message}[/]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    err_console.print(f"[warning]Warning:[/] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[error]Error:[/] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]{message}[/]")


_OUTCOME_LABELS: dict[RemoveStatus, str] = {
    RemoveStatus.SUCCEEDED: "[removed]removed[/]",
    RemoveStatus.DECLINED: "[declined]declined[/]",
    RemoveStatus.FAILED: "[error]failed[/]",
}


def outcome_label(status: RemoveStatus, *, dry_run: bool = False) -> str:
    """Themed markup naming a removal outcome; dry runs show as previews."""
    if dry_run:
        return "[preview]dry-run[/]"
    return _OUTCOME_LABELS[status]


def format_size(size_bytes: int, *, human_readable: bool = True, kilobytes: bool = False) -> str:
    """Format a byte count for display.

    Without ``human_readable`` the raw count is shown. ``kilobytes`` pins
    the unit to KiB; otherwise the largest unit that keeps the value
    above 1024 is picked, up to TiB.

    Args:
        size_bytes: Number of bytes.
        human_readable: Scale into a size-appropriate unit.
        kilobytes: Always scale to KiB (implies human_readable).

    Returns:
        Formatted size string, e.g. "512 bytes" or "1.50 MiB".
    """
    if not (human_readable or kilobytes):
        return f"{size_bytes} bytes"

    size = float(size_bytes)
    if kilobytes:
        return f"{size / 1024:.2f} KiB"
    if size <= 1024:
        return f"{size_bytes} bytes"

    unit = "bytes"
    for next_unit in ("KiB", "MiB", "GiB", "TiB"):
        if size <= 1024:
            break
        size /= 1024
        unit = next_unit
    return f"{size:.2f} {unit}"
