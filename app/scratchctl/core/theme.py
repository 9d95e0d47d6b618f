"""Console colors for scratchctl.

The bundled palette lives in data/theme.toml. A theme.toml in the user's
config directory may override any subset of its colors; an unreadable or
invalid override is ignored with a warning.
"""

import functools
import logging
import re
import tomllib
from importlib import resources
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from rich.theme import Theme

from scratchctl.core.paths import get_user_theme_path

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"#(?:[0-9a-fA-F]{3}){1,2}")


class Palette(BaseModel):
    """Colors for console messages and removal outcomes (#RGB or #RRGGBB)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    muted: str = "#b2bec3"
    header: str = "#69B9A1"

    success: str = "#03b971"
    warning: str = "#f5b332"
    error: str = "#f53263"
    info: str = "#0ec1c8"

    # One per RemoveStatus, plus dry-run previews
    removed: str = "#c1ff62"
    declined: str = "#faf870"
    preview: str = "#0e8ac8"

    @field_validator("*")
    @classmethod
    def check_hex(cls, v: str) -> str:
        color = v.strip()
        if not _HEX_COLOR.fullmatch(color):
            raise ValueError(f"not a #RGB or #RRGGBB color: {v!r}")
        return color

    def styles(self) -> dict[str, str]:
        """Rich style definitions keyed by markup tag."""
        styles = self.model_dump()
        styles["error"] = f"bold {self.error}"
        styles["bold_header"] = f"bold {self.header}"
        return styles


def _read_colors(path: Path) -> dict[str, object]:
    """Return the [colors] table of a theme file ({} when it has none).

    Raises:
        OSError: If the file cannot be read.
        tomllib.TOMLDecodeError: If it is not valid TOML.
    """
    with open(path, "rb") as f:
        colors = tomllib.load(f).get("colors", {})
    return colors if isinstance(colors, dict) else {}


def load_palette(user_path: Path | None = None) -> Palette:
    """Bundled colors overlaid with the user's overrides.

    Args:
        user_path: Override file. Defaults to theme.toml in the config dir.
    """
    bundled = resources.files("scratchctl.data").joinpath("theme.toml")
    with bundled.open("rb") as f:
        colors = tomllib.load(f)["colors"]

    path = user_path or get_user_theme_path()
    try:
        overrides = _read_colors(path)
    except FileNotFoundError:
        return Palette(**colors)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Ignoring theme file %s: %s", path, e)
        return Palette(**colors)

    try:
        return Palette(**{**colors, **overrides})
    except ValidationError as e:
        logger.warning("Ignoring invalid colors in %s: %s", path, e)
        return Palette(**colors)


@functools.cache
def get_theme() -> Theme:
    """The Rich theme shared by every console, loaded on first use."""
    return Theme(load_palette().styles())
