"""Two-phase cleanup of scratch directories.

The scan phase walks each top-level directory depth-first. A directory is
eligible only if every file in it passes the eligibility tests and every
subdirectory was itself eligible and renamed into quarantine. Each
quarantined directory is recorded in the work log, which drops entries
made redundant by a quarantined ancestor.

The drain phase then removes every queued quarantine path, oldest entry
first, with the rate-limited recursive remover.

The top-level directories themselves are never removed, only their
contents.
"""

import errno
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from scratchctl.core.config import CleanupConfig
from scratchctl.core.paths import ensure_state_dir, get_default_worklog_path
from scratchctl.core.ratelimit import RateLimiter
from scratchctl.filesystem.eligibility import EligibilityChain, build_chain
from scratchctl.filesystem.models import (
    DirectoryEntry,
    RemoveStatus,
    Verdict,
    WorklogEntry,
)
from scratchctl.filesystem.probe import Prober
from scratchctl.filesystem.quarantine import QuarantineNamer, is_quarantine_name
from scratchctl.filesystem.remover import Remover
from scratchctl.filesystem.worklog import Worklog, WorklogError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DrainResult:
    """Outcome of removing one queued directory.

    Attributes:
        entry: Work log entry that was drained.
        status: Removal outcome.
        error_code: errno of the failure, None unless FAILED.
        error: Failure message, None unless FAILED.
        dry_run: Whether this was a dry-run (nothing was removed).
    """

    entry: WorklogEntry
    status: RemoveStatus
    error_code: int | None = None
    error: str | None = None
    dry_run: bool = False

    @property
    def failed(self) -> bool:
        return self.status == RemoveStatus.FAILED


@dataclass(slots=True)
class PathOutcome:
    """What happened to one top-level argument.

    Attributes:
        path: Canonical path of the argument.
        verdict: Verdict of the top-level scan (or of the file, for file
            arguments); None if it was never tested.
        is_file: The argument was a plain file.
        removed: The file argument was removed (or would be, in a dry run).
        queued: Live work log entries once the scan completed.
        drained: Results of the drain phase.
        error: Why the argument failed, None if it did not.
    """

    path: str
    verdict: Verdict | None = None
    is_file: bool = False
    removed: bool = False
    queued: int = 0
    drained: list[DrainResult] = field(default_factory=list)
    error: str | None = None

    @property
    def failed(self) -> bool:
        """True if the argument or any queued directory failed."""
        return self.error is not None or any(result.failed for result in self.drained)


@dataclass(slots=True)
class RunReport:
    """Summary of a whole cleanup run.

    Attributes:
        outcomes: One outcome per processed argument, in order.
        bytes_freed: Total size of everything removed.
        dry_run: Whether this was a dry-run.
        stopped_early: Remaining arguments were skipped after a failure.
    """

    outcomes: list[PathOutcome] = field(default_factory=list)
    bytes_freed: int = 0
    dry_run: bool = True
    stopped_early: bool = False

    @property
    def failed(self) -> bool:
        return any(outcome.failed for outcome in self.outcomes)

    @property
    def drained(self) -> list[DrainResult]:
        return [result for outcome in self.outcomes for result in outcome.drained]


class CleanupEngine:
    """Scans directory trees and removes their eligible content.

    Args:
        config: Settings for the run.
        chain: Eligibility tests applied to every non-directory.
        prober: Rate-limited probe shared with the chain.
        remover: Rate-limited remover used to drain the work log.
        namer: Quarantine namer for this run (defaults to one started now).
    """

    def __init__(
        self,
        config: CleanupConfig,
        *,
        chain: EligibilityChain,
        prober: Prober,
        remover: Remover,
        namer: QuarantineNamer | None = None,
    ) -> None:
        self.config = config
        self.chain = chain
        self.namer = namer or QuarantineNamer()
        self._prober = prober
        self._remover = remover
        self._worklog_failed = False

    @classmethod
    def from_config(cls, config: CleanupConfig) -> "CleanupEngine":
        """Build an engine with its own rate limiters, probe and remover.

        Raises:
            ConfigError: If an excluded user or group cannot be resolved.
        """
        prober = Prober(RateLimiter("stat", config.stat_limit))
        remover = Remover(
            prober,
            RateLimiter("unlink", config.unlink_limit),
            dry_run=config.dry_run,
            track_bytes=True,
        )
        chain = build_chain(config, prober)
        return cls(config, chain=chain, prober=prober, remover=remover)

    @property
    def stat_limiter(self) -> RateLimiter:
        return self._prober.limiter

    @property
    def unlink_limiter(self) -> RateLimiter:
        return self._remover.limiter

    @property
    def bytes_freed(self) -> int:
        """Total size of everything removed so far."""
        return self._remover.bytes_freed

    def log_settings(self) -> None:
        """Log the settings the run will use."""
        if self.config.dry_run:
            logger.info("This will be a dry run only; nothing will be renamed or removed")
        if not self.config.exclude_root:
            logger.info("Directories and files owned by root (uid = 0) will also be removed")
        days = self.config.days
        logger.info(
            "Temporal threshold of %d day%s (%s)",
            days,
            "" if days == 1 else "s",
            datetime.fromtimestamp(self.chain.threshold).strftime("%Y-%m-%d %H:%M:%S"),
        )
        self.chain.describe()

    # =========================================================================
    # Scan phase
    # =========================================================================

    def scan_directory(self, path: str, worklog: Worklog) -> Verdict:
        """Classify a directory, quarantining its eligible subdirectories.

        Args:
            path: Directory to scan.
            worklog: Log receiving every quarantined subdirectory.

        Returns:
            ELIGIBLE if everything in path may be removed, INELIGIBLE if
            something may not, UNKNOWN if path could not be listed.
        """
        try:
            entries = self._prober.list_directory(path)
        except OSError as e:
            logger.info("Unable to open directory %s (errno = %d)", path, e.errno or 0)
            return Verdict.UNKNOWN
        logger.debug("Entered directory %s", path)

        verdict = Verdict.ELIGIBLE
        subdirectories: list[DirectoryEntry] = []
        for entry in entries:
            if entry.is_dir:
                subdirectories.append(entry)
            elif verdict == Verdict.ELIGIBLE:
                if self.chain.check_path(entry.path, self.config.timestamp) != Verdict.ELIGIBLE:
                    logger.info("Directory removal short-circuited by file %s", entry.path)
                    verdict = Verdict.INELIGIBLE

        # every subdirectory is visited so its own eligible content is queued
        for entry in subdirectories:
            if not self._resolve_subdirectory(entry, worklog):
                verdict = Verdict.INELIGIBLE

        logger.debug("Exiting directory %s", path)
        return verdict

    def _resolve_subdirectory(self, entry: DirectoryEntry, worklog: Worklog) -> bool:
        """Scan and quarantine one subdirectory; False disqualifies its parent."""
        if entry.path in self.chain.excluded_paths:
            logger.info("Directory removal short-circuited by excluded path %s", entry.path)
            return False
        logger.debug("Stepping into subdirectory %s", entry.path)
        if self.scan_directory(entry.path, worklog) != Verdict.ELIGIBLE:
            return False
        if is_quarantine_name(entry.name):
            # already renamed, but never queued by this run
            logger.warning("Directory flagged by previous run: %s", entry.path)
            return True
        try:
            return self.quarantine(entry.path, worklog) is not None
        except OSError as e:
            logger.error(
                "(errno = %d) Unable to rename removal target %s", e.errno or 0, entry.path
            )
            return False

    def quarantine(self, path: str, worklog: Worklog) -> str | None:
        """Rename an eligible directory into quarantine and queue it.

        In a dry run nothing is renamed, but the entry is queued exactly
        as a real run would queue it.

        Returns:
            The quarantine path, or None if the work log rejected the
            entry (the scan transaction is then discarded).

        Raises:
            OSError: If the rename fails.
        """
        target = self.namer.path_for(path)
        logger.warning("Directory flagged for removal: %s", path)
        if self.config.dry_run:
            logger.info("Directory would be renamed %s", target)
        else:
            logger.debug("RENAME(%s, %s)", path, target)
            os.rename(path, target)

        if not worklog.add(path, target):
            self._worklog_failed = True
            return None
        return target

    # =========================================================================
    # Drain phase
    # =========================================================================

    def drain(self, worklog: Worklog) -> list[DrainResult]:
        """Remove every queued directory, oldest entry first.

        Each entry leaves the log once it has been handled, whatever the
        outcome, so an on-disk log can be drained again after an
        interruption. A dry run reports every entry and leaves the log
        untouched.

        Raises:
            WorklogError: If the log cannot be read or updated.
        """
        logger.info("Processing work log...")
        if self.config.dry_run:
            return [self._drain_entry(entry) for entry in worklog.entries()]

        results: list[DrainResult] = []
        while (entry := worklog.peek()) is not None:
            results.append(self._drain_entry(entry))
            worklog.complete(entry)
        return results

    def _drain_entry(self, entry: WorklogEntry) -> DrainResult:
        if self.config.dry_run:
            logger.info("Directory would be removed: %s", entry.quarantine_path)
            return DrainResult(entry=entry, status=RemoveStatus.SUCCEEDED, dry_run=True)

        logger.info("Removing directory %s", entry.quarantine_path)
        result = self._remover.remove(entry.quarantine_path)
        if result.failed:
            if result.error_code == errno.ENOENT and result.path == entry.quarantine_path:
                logger.warning("Queued directory already gone: %s", entry.quarantine_path)
                return DrainResult(entry=entry, status=RemoveStatus.SUCCEEDED)
            return DrainResult(
                entry=entry,
                status=RemoveStatus.FAILED,
                error_code=result.error_code,
                error=f"{result.path}: {result.error}",
            )
        return DrainResult(entry=entry, status=result.status)

    # =========================================================================
    # Top-level arguments
    # =========================================================================

    def clean_path(self, path: str, worklog: Worklog) -> PathOutcome:
        """Scan one top-level directory and drain what it queued.

        Args:
            path: Canonical directory path.
            worklog: Empty work log dedicated to this directory.
        """
        outcome = PathOutcome(path=path)
        if path in self.chain.excluded_paths:
            logger.error("The directory %s is set to be excluded!", path)
            return outcome

        logger.info("Scanning %s", path)
        self._worklog_failed = False
        outcome.verdict = self.scan_directory(path, worklog)

        discard = outcome.verdict == Verdict.UNKNOWN or self._worklog_failed
        if not worklog.scan_complete(discard=discard):
            outcome.error = "Unable to commit the work log"
            return outcome
        outcome.queued = len(worklog)
        if discard:
            if outcome.verdict == Verdict.UNKNOWN:
                outcome.error = "Unable to scan directory"
            else:
                outcome.error = "Unable to record the work log; nothing was queued"
            logger.error("Scan of %s discarded: %s", path, outcome.error)
            return outcome

        if not self.config.work_log_only:
            outcome.drained = self.drain(worklog)
        return outcome

    def clean_file(self, path: str) -> PathOutcome:
        """Test a single top-level file and remove it if eligible."""
        outcome = PathOutcome(path=path, is_file=True)
        outcome.verdict = self.chain.check_path(path, self.config.timestamp)
        if outcome.verdict != Verdict.ELIGIBLE:
            return outcome

        if self.config.dry_run:
            logger.info("File would be removed: %s", path)
            outcome.removed = True
            return outcome

        result = self._remover.remove(path)
        if result.failed:
            logger.error("Unable to remove %s (errno = %d)", path, result.error_code or 0)
            outcome.error = result.error
        else:
            logger.info("Removed %s", path)
            outcome.removed = True
        return outcome

    def open_worklog(self, index: int = 1, suffix: bool = False) -> Worklog:
        """Create the work log for the index-th top-level directory.

        Args:
            index: 1-based position of the directory among the arguments.
            suffix: Append ".<index>" to the file name.

        Raises:
            WorklogError: If the log cannot be created.
        """
        if self.config.work_log:
            base = Path(self.config.work_log).expanduser()
        elif self.config.keep_work_log:
            ensure_state_dir()
            base = get_default_worklog_path()
        else:
            logger.debug("Creating in-memory work log")
            return Worklog()

        path = base.with_name(f"{base.name}.{index}") if suffix else base
        logger.debug("Creating work log at path %s", path)
        return Worklog(path)

    def run(self, paths: list[str]) -> RunReport:
        """Clean every top-level argument in turn.

        Unless keep_going is set, the run stops at the first argument that
        fails.
        """
        report = RunReport(dry_run=self.config.dry_run)
        suffix = len(paths) > 1 and (bool(self.config.work_log) or self.config.keep_work_log)

        for index, raw in enumerate(paths, start=1):
            if report.failed and not self.config.keep_going:
                skipped = len(paths) - index + 1
                logger.error("Stopping after failure; %d path(s) not processed", skipped)
                report.stopped_early = True
                break
            report.outcomes.append(self._run_one(raw, index, suffix))

        report.bytes_freed = self.bytes_freed
        return report

    def _run_one(self, raw: str, index: int, suffix: bool) -> PathOutcome:
        path = os.path.realpath(raw)
        if not os.path.exists(path):
            logger.error("No such file or directory: %s", raw)
            return PathOutcome(path=path, error="No such file or directory")

        if not self._prober.is_directory(path):
            if self.config.allow_files:
                return self.clean_file(path)
            logger.error("%s is not a directory", path)
            return PathOutcome(path=path, error="Not a directory")

        try:
            worklog = self.open_worklog(index, suffix)
        except WorklogError as e:
            logger.error("Unable to create work log for %s: %s", path, e)
            return PathOutcome(path=path, error=str(e))

        try:
            return self.clean_path(path, worklog)
        except WorklogError as e:
            logger.error("%s", e)
            return PathOutcome(path=path, error=str(e))
        finally:
            worklog.close(keep=self.config.keep_work_log)
