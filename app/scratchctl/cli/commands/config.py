"""Config command implementation.

Shows the effective cleanup settings and writes a default config file.
"""

from typing import Annotated

import typer
from rich.table import Table

from scratchctl.cli.types import ConfigOption, load_settings
from scratchctl.core.config import CleanupConfig, ConfigError, config_to_dict, save_config
from scratchctl.core.paths import get_config_path
from scratchctl.utils.formatting import console, print_error, print_info, print_success

app = typer.Typer(
    help="Show or initialize the cleanup configuration.",
    no_args_is_help=True,
)


@app.command()
def show(config_path: ConfigOption = None) -> None:
    """Show the effective configuration."""
    config = load_settings(config_path)
    source = config_path or get_config_path()

    table = Table(title="Cleanup Settings", show_lines=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    data = config_to_dict(config)
    for name in CleanupConfig.model_fields:
        value = data.get(name)
        if value is None:
            shown = "[muted]-[/]"
        elif isinstance(value, list):
            shown = ", ".join(str(item) for item in value) or "[muted]-[/]"
        else:
            shown = str(value)
        table.add_row(name, shown)

    console.print(table)
    if not source.exists():
        print_info(f"No config file at {source}; showing defaults.")


@app.command()
def init(
    config_path: ConfigOption = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing config file."),
    ] = False,
) -> None:
    """Write a config file containing the default settings."""
    target = config_path or get_config_path()
    if target.exists() and not force:
        print_error(f"Config already exists: {target} (use --force to overwrite)")
        raise typer.Exit(code=1)

    try:
        saved = save_config(CleanupConfig(), target)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    print_success(f"Config written to {saved}")
