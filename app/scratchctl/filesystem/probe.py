"""Rate-limited filesystem probing.

All metadata lookups made while scanning or removing go through a
Prober so that they share one rate limiter. Probes never follow
symbolic links.
"""

import logging
import os

from scratchctl.core.ratelimit import RateLimiter
from scratchctl.filesystem.models import DirectoryEntry, PathMetadata

logger = logging.getLogger(__name__)


class Prober:
    """Rate-limited lstat() and directory listing.

    Args:
        limiter: Rate limiter for probe calls. Defaults to an unlimited one.
    """

    def __init__(self, limiter: RateLimiter | None = None) -> None:
        self.limiter = limiter if limiter is not None else RateLimiter("stat")

    def probe(self, path: str) -> PathMetadata:
        """Take a metadata snapshot of path without following symlinks.

        Raises:
            OSError: If the entity cannot be examined.
        """
        self.limiter.record_call_and_maybe_delay()
        return PathMetadata.from_stat(os.lstat(path))

    def is_directory(self, path: str) -> bool:
        """True if path is a directory; False if not, or if it cannot be probed."""
        try:
            return self.probe(path).is_directory
        except OSError:
            return False

    def list_directory(self, path: str) -> list[DirectoryEntry]:
        """List the entries of a directory, excluding "." and "..".

        Raises:
            OSError: If the directory cannot be opened or read.
        """
        with os.scandir(path) as entries:
            return [
                DirectoryEntry(
                    name=entry.name,
                    path=entry.path,
                    is_dir=self._entry_is_dir(entry),
                )
                for entry in entries
            ]

    def _entry_is_dir(self, entry: os.DirEntry[str]) -> bool:
        # is_dir() only raises when its own lstat() fallback fails
        try:
            return entry.is_dir(follow_symlinks=False)
        except OSError:
            return self.is_directory(entry.path)
