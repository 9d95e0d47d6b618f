"""Main CLI application entry point.

Defines the Typer application, global options and logging setup.
"""

import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from scratchctl import __version__
from scratchctl.cli.commands import clean, config, drain, du, rm
from scratchctl.utils.formatting import err_console

# Create main Typer app
app = typer.Typer(
    name="scratchctl",
    help="Rate-limited cleanup of shared scratch filesystems.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

# Each -v lowers the threshold by one step from ERROR.
_VERBOSITY_LEVELS = (logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"scratchctl version {__version__}")
        raise typer.Exit()


def configure_logging(verbose: int = 0, quiet: bool = False) -> int:
    """Route log records to stderr through Rich.

    Args:
        verbose: Number of -v flags given.
        quiet: Only show critical messages.

    Returns:
        The logging level in effect.
    """
    if quiet:
        level = logging.CRITICAL
    else:
        level = _VERBOSITY_LEVELS[min(verbose, len(_VERBOSITY_LEVELS) - 1)]

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, markup=False)],
        force=True,
    )
    return level


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase output; may be given several times.",
        ),
    ] = 0,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Only report critical errors.",
        ),
    ] = False,
) -> None:
    """scratchctl - Rate-limited cleanup of shared scratch filesystems.

    Finds directories whose entire content is older than a threshold,
    quarantines them, and removes them without overloading the
    filesystem's metadata servers.
    """
    configure_logging(verbose, quiet)


# Register commands
app.command(name="clean")(clean.clean)
app.command(name="drain")(drain.drain)
app.command(name="rm")(rm.rm)
app.command(name="du")(du.du)
app.add_typer(config.app, name="config")


if __name__ == "__main__":
    app()
