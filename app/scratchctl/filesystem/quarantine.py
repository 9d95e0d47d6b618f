"""Quarantine naming for directories queued for removal.

An eligible directory is renamed in place to a reserved name that embeds
the start time of the run, e.g. ``.scratchctl202610191430-results``. A
later run recognizes such names and leaves them alone instead of queuing
them a second time.
"""

import os
import re
from datetime import datetime

QUARANTINE_PREFIX = ".scratchctl"
STAMP_FORMAT = "%Y%m%d%H%M"

_QUARANTINE_PATTERN = re.compile(rf"^{re.escape(QUARANTINE_PREFIX)}\d{{12}}-")


def is_quarantine_name(name: str) -> bool:
    """True if name is a basename produced by a QuarantineNamer."""
    return _QUARANTINE_PATTERN.match(name) is not None


class QuarantineNamer:
    """Produces quarantine names that are unique to one run.

    Args:
        started: Start time of the run (defaults to now).
    """

    def __init__(self, started: datetime | None = None) -> None:
        self.started = started or datetime.now()
        self.stamp = self.started.strftime(STAMP_FORMAT)

    def name_for(self, name: str) -> str:
        """Quarantine basename for the given basename."""
        return f"{QUARANTINE_PREFIX}{self.stamp}-{name}"

    def path_for(self, path: str) -> str:
        """Quarantine path for path, in the same parent directory."""
        parent, name = os.path.split(path.rstrip("/"))
        return os.path.join(parent, self.name_for(name))
