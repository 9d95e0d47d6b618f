"""Rate-limited recursive removal.

Removal is depth-first: subdirectories are emptied and removed, files are
unlinked, then the directory itself is removed. Every unlink() and
rmdir() goes through the mutation rate limiter, and every probe through
the shared Prober.

An entity that vanished between listing and removal (ENOENT) is not an
error. Any other failure aborts the rest of that subtree and is reported
with its errno.

The interactive variant asks before each unlink() or rmdir(). Answering
"no" yields a DECLINED outcome, which is not a failure: the enclosing
directory cannot be removed and is itself reported as declined, without
asking about it.
"""

import errno
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass

import typer

from scratchctl.core.ratelimit import RateLimiter
from scratchctl.filesystem.models import DirectoryEntry, PathMetadata, RemoveStatus
from scratchctl.filesystem.probe import Prober

logger = logging.getLogger(__name__)

# Asked before each interactive removal; True means go ahead.
Prompt = Callable[[str], bool]


def confirm_removal(message: str) -> bool:
    """Ask the operator on the terminal, defaulting to "no"."""
    return typer.confirm(message, default=False)


@dataclass(frozen=True, slots=True)
class RemoveResult:
    """Outcome of removing one path (and everything beneath it).

    Attributes:
        path: Path that was removed.
        status: Terminal outcome.
        error_code: errno of the failure, None unless FAILED.
        error: Failure message, None unless FAILED.
        dry_run: Whether this was a dry-run (nothing was removed).
    """

    path: str
    status: RemoveStatus
    error_code: int | None = None
    error: str | None = None
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == RemoveStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status == RemoveStatus.FAILED

    @property
    def declined(self) -> bool:
        return self.status == RemoveStatus.DECLINED


class Remover:
    """Removes files and directory trees.

    Args:
        prober: Rate-limited probe used to examine entities.
        limiter: Rate limiter for unlink() and rmdir(). Defaults to an
            unlimited one.
        dry_run: Log what would be removed without removing anything.
        track_bytes: Sum the size of every entity actually removed.
        prompt: Question asked before each interactive removal.

    Attributes:
        bytes_freed: Total st_size of removed entities (when tracking).
    """

    def __init__(
        self,
        prober: Prober,
        limiter: RateLimiter | None = None,
        *,
        dry_run: bool = False,
        track_bytes: bool = False,
        prompt: Prompt | None = None,
    ) -> None:
        self.limiter = limiter if limiter is not None else RateLimiter("unlink")
        self.dry_run = dry_run
        self.track_bytes = track_bytes
        self.bytes_freed = 0
        self._prober = prober
        self._prompt = prompt or confirm_removal

    # =========================================================================
    # Unconditional removal
    # =========================================================================

    def remove(self, path: str) -> RemoveResult:
        """Remove path and, for a directory, everything beneath it.

        Args:
            path: File or directory to remove.

        Returns:
            SUCCEEDED or FAILED (never DECLINED).
        """
        try:
            metadata = self._prober.probe(path)
        except OSError as e:
            logger.error("Unable to stat(%s) (errno = %d)", path, e.errno or 0)
            return self._failure(path, e)

        if metadata.is_directory:
            return self._remove_tree(path)

        failure = self._unlink(path, metadata)
        return failure or self._success(path)

    def _remove_tree(self, path: str) -> RemoveResult:
        logger.debug("Entering directory %s", path)
        try:
            entries = self._prober.list_directory(path)
        except OSError as e:
            if e.errno == errno.ENOENT:
                logger.debug("Already gone: %s", path)
                return self._success(path)
            logger.error("Unable to scan directory %s (errno = %d)", path, e.errno or 0)
            return self._failure(path, e)

        for entry in entries:
            if entry.is_dir:
                result = self._remove_tree(entry.path)
                if not result.succeeded:
                    return result
                continue
            metadata = None
            if self.track_bytes:
                metadata = self._probe_entry(entry)
                if metadata is None:
                    continue
            failure = self._unlink(entry.path, metadata)
            if failure is not None:
                return failure

        failure = self._rmdir(path)
        logger.debug("Exiting directory %s", path)
        return failure or self._success(path)

    # =========================================================================
    # Interactive removal
    # =========================================================================

    def remove_interactive(self, path: str, *, recursive: bool = False) -> RemoveResult:
        """Remove path, asking before each unlink() and rmdir().

        Args:
            path: File or directory to remove.
            recursive: Descend into directories. Without it a directory
                cannot be removed.

        Returns:
            SUCCEEDED, FAILED or DECLINED.
        """
        try:
            metadata = self._prober.probe(path)
        except OSError as e:
            logger.error("Unable to stat(%s) (errno = %d)", path, e.errno or 0)
            return self._failure(path, e)

        if not metadata.is_directory:
            return self._unlink_interactive(path, metadata)

        if not recursive:
            name = os.path.basename(path.rstrip("/")) or path
            logger.error("cannot remove `%s': Is a directory", name)
            return RemoveResult(
                path=path,
                status=RemoveStatus.FAILED,
                error_code=errno.EISDIR,
                error=os.strerror(errno.EISDIR),
            )
        return self._remove_tree_interactive(path)

    def _remove_tree_interactive(self, path: str) -> RemoveResult:
        logger.debug("Entering directory %s", path)
        try:
            entries = self._prober.list_directory(path)
        except OSError as e:
            if e.errno == errno.ENOENT:
                logger.debug("Already gone: %s", path)
                return self._success(path)
            logger.error("Unable to scan directory %s (errno = %d)", path, e.errno or 0)
            return self._failure(path, e)

        declined = False
        for entry in entries:
            if entry.is_dir:
                result = self._remove_tree_interactive(entry.path)
            else:
                metadata = self._probe_entry(entry)
                if metadata is None:
                    continue
                result = self._unlink_interactive(entry.path, metadata)
            if result.failed:
                return result
            declined = declined or result.declined

        logger.debug("Exiting directory %s", path)
        if declined:
            return RemoveResult(path=path, status=RemoveStatus.DECLINED)
        if self.dry_run:
            logger.info("Would rmdir(%s)", path)
            return self._success(path)

        name = os.path.basename(path.rstrip("/")) or path
        if not self._prompt(f"remove directory `{name}'"):
            return RemoveResult(path=path, status=RemoveStatus.DECLINED)
        failure = self._rmdir(path)
        return failure or self._success(path)

    def _unlink_interactive(self, path: str, metadata: PathMetadata) -> RemoveResult:
        if self.dry_run:
            logger.info("Would unlink(%s)", path)
            return self._success(path)
        name = os.path.basename(path)
        if not self._prompt(f"remove {metadata.path_type.description} `{name}'"):
            return RemoveResult(path=path, status=RemoveStatus.DECLINED)
        failure = self._unlink(path, metadata)
        return failure or self._success(path)

    # =========================================================================
    # Primitives
    # =========================================================================

    def _probe_entry(self, entry: DirectoryEntry) -> PathMetadata | None:
        """Probe a listed entry; None means it is skipped."""
        try:
            return self._prober.probe(entry.path)
        except OSError as e:
            logger.info("Unable to stat(%s) (errno = %d)", entry.path, e.errno or 0)
            return None

    def _remove_entity(self, path: str, is_directory: bool) -> None:
        """Rate-limited unlink() or rmdir().

        Raises:
            OSError: If the call fails.
        """
        self.limiter.record_call_and_maybe_delay()
        if is_directory:
            os.rmdir(path)
        else:
            os.unlink(path)

    def _unlink(self, path: str, metadata: PathMetadata | None) -> RemoveResult | None:
        """Unlink a non-directory; returns a result only on failure.

        metadata is only needed when tracking bytes.
        """
        if self.dry_run:
            logger.info("Would unlink(%s)", path)
            return None
        try:
            self._remove_entity(path, is_directory=False)
        except OSError as e:
            if e.errno == errno.ENOENT:
                logger.debug("Already gone: %s", path)
                return None
            logger.error("Unable to unlink(%s) (errno = %d)", path, e.errno or 0)
            return self._failure(path, e)
        if self.track_bytes and metadata is not None:
            self.bytes_freed += metadata.size
        return None

    def _rmdir(self, path: str) -> RemoveResult | None:
        """Remove an emptied directory; returns a result only on failure."""
        if self.dry_run:
            logger.info("Would rmdir(%s)", path)
            return None

        size = 0
        if self.track_bytes:
            # the directory's own size is only known once it is empty
            try:
                size = self._prober.probe(path).size
            except OSError:
                size = 0

        logger.debug("Removing directory %s", path)
        try:
            self._remove_entity(path, is_directory=True)
        except OSError as e:
            if e.errno == errno.ENOENT:
                logger.debug("Already gone: %s", path)
                return None
            logger.error("Unable to rmdir(%s) (errno = %d)", path, e.errno or 0)
            return self._failure(path, e)
        self.bytes_freed += size
        return None

    def _success(self, path: str) -> RemoveResult:
        return RemoveResult(path=path, status=RemoveStatus.SUCCEEDED, dry_run=self.dry_run)

    def _failure(self, path: str, error: OSError) -> RemoveResult:
        return RemoveResult(
            path=path,
            status=RemoveStatus.FAILED,
            error_code=error.errno,
            error=error.strerror or str(error),
        )

