"""Apparent disk usage of a directory tree.

Sums st_size over every entity in a tree using the rate-limited probe,
so measuring a large scratch area puts no more load on the metadata
servers than a cleanup scan does.
"""

import logging

from scratchctl.filesystem.probe import Prober

logger = logging.getLogger(__name__)


class DiskUsage:
    """Measures the total size of files and directories.

    Args:
        prober: Rate-limited probe shared with other walkers.
    """

    def __init__(self, prober: Prober) -> None:
        self._prober = prober

    def measure(self, path: str) -> int:
        """Total st_size of path and everything beneath it.

        Symbolic links are counted as themselves and never followed.

        Raises:
            OSError: On the first entity that cannot be probed or the first
                directory that cannot be listed.
        """
        try:
            metadata = self._prober.probe(path)
        except OSError as e:
            logger.error("Unable to stat() %s (errno = %d)", path, e.errno or 0)
            raise
        if not metadata.is_directory:
            return metadata.size
        return metadata.size + self._measure_contents(path)

    def _measure_contents(self, path: str) -> int:
        try:
            entries = self._prober.list_directory(path)
        except OSError as e:
            logger.error("Unable to open directory %s (errno = %d)", path, e.errno or 0)
            raise
        logger.debug("Entered directory %s", path)

        total = 0
        for entry in entries:
            if entry.is_dir:
                logger.debug("Stepping into subdirectory %s", entry.path)
            total += self.measure(entry.path)

        logger.debug("Exiting directory %s", path)
        return total
