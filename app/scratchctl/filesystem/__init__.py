"""Scratch filesystem scanning and removal.

This module provides the rate-limited probe, the eligibility test chain,
quarantine naming, the work log, recursive removal, disk usage and the
two-phase cleanup engine.
"""

from scratchctl.filesystem.cleaner import CleanupEngine, DrainResult, PathOutcome, RunReport
from scratchctl.filesystem.eligibility import EligibilityChain, build_chain, compute_threshold
from scratchctl.filesystem.models import (
    PathMetadata,
    PathType,
    RemoveStatus,
    Verdict,
    WorklogEntry,
)
from scratchctl.filesystem.probe import Prober
from scratchctl.filesystem.quarantine import QuarantineNamer, is_quarantine_name
from scratchctl.filesystem.remover import RemoveResult, Remover
from scratchctl.filesystem.usage import DiskUsage
from scratchctl.filesystem.worklog import Worklog, WorklogError

__all__ = [
    "CleanupEngine",
    "DiskUsage",
    "DrainResult",
    "EligibilityChain",
    "PathMetadata",
    "PathOutcome",
    "PathType",
    "Prober",
    "QuarantineNamer",
    "RemoveResult",
    "RemoveStatus",
    "Remover",
    "RunReport",
    "Verdict",
    "Worklog",
    "WorklogEntry",
    "WorklogError",
    "build_chain",
    "compute_threshold",
    "is_quarantine_name",
]
