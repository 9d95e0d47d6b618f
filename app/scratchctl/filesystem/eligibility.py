"""Eligibility test chain for filesystem removal.

Beyond the basic age test, any number of named predicates can further
disqualify an entity. Predicates run in registration order as a
conjunction that stops at the first non-eligible result. Registering an
existing name replaces that predicate in place.
"""

import grp
import logging
import pwd
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from scratchctl.core.config import (
    CleanupConfig,
    ConfigError,
    EpochBasis,
    SpecialFilePolicy,
    TimestampPolicy,
)
from scratchctl.filesystem.models import PathCheck, PathMetadata, PathType, Verdict
from scratchctl.filesystem.probe import Prober

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

# A predicate's context is whatever its closure captures.
Predicate = Callable[[str, PathMetadata], Verdict]


def compute_threshold(days: int, epoch: EpochBasis, now: datetime | None = None) -> float:
    """Compute the age cutoff as seconds since the epoch.

    The cutoff is counted back ``days`` whole days from the current time,
    from local midnight today, or from local noon today.

    Args:
        days: Minimum age in days.
        epoch: Point the cutoff is counted back from.
        now: Current local time (defaults to datetime.now()).

    Returns:
        Entities whose governing timestamp is strictly older than this are
        old enough.
    """
    base = (now or datetime.now()).astimezone()
    if epoch == EpochBasis.MIDNIGHT:
        base = base.replace(hour=0, minute=0, second=0, microsecond=0)
    elif epoch == EpochBasis.NOON:
        base = base.replace(hour=12, minute=0, second=0, microsecond=0)
    return base.timestamp() - days * SECONDS_PER_DAY


def governing_timestamp(metadata: PathMetadata, policy: TimestampPolicy) -> float:
    """Pick the timestamp the age test uses under policy."""
    if policy == TimestampPolicy.MTIME:
        return metadata.mtime
    if policy == TimestampPolicy.ATIME:
        return metadata.atime
    return max(metadata.mtime, metadata.atime)


class EligibilityChain:
    """Ordered, named predicates deciding whether an entity may be removed.

    Args:
        threshold: Age cutoff in seconds since the epoch.
        prober: Rate-limited probe used to examine each path.
        exclude_root: Treat anything owned by uid 0 or gid 0 as ineligible.

    Attributes:
        excluded_paths: Canonical paths that are never removed, nor
            anything inside them. Set by build_chain().
    """

    def __init__(self, threshold: float, prober: Prober, *, exclude_root: bool = True) -> None:
        self.threshold = threshold
        self.exclude_root = exclude_root
        self.excluded_paths: frozenset[str] = frozenset()
        self._prober = prober
        # dicts keep insertion order and reassignment keeps position
        self._predicates: dict[str, Predicate] = {}

    def register(self, name: str, predicate: Predicate) -> None:
        """Append a predicate, or replace an existing one with the same name in place."""
        self._predicates[name] = predicate

    def unregister(self, name: str) -> bool:
        """Remove the predicate registered under name.

        Returns:
            True if a predicate was removed.
        """
        return self._predicates.pop(name, None) is not None

    @property
    def names(self) -> list[str]:
        """Registered predicate names in evaluation order."""
        return list(self._predicates)

    def __len__(self) -> int:
        return len(self._predicates)

    def __contains__(self, name: object) -> bool:
        return name in self._predicates

    def describe(self) -> list[str]:
        """Log and return a numbered summary of the test chain."""
        lines = ["(0) default tests"]
        lines.extend(f"({i}) {name}" for i, name in enumerate(self._predicates, start=1))
        logger.info("Filesystem test chain:")
        for line in lines:
            logger.info("  %s", line)
        return lines

    def inspect(self, path: str, policy: TimestampPolicy) -> PathCheck:
        """Probe path and run the full set of tests on it.

        Args:
            path: Path to test.
            policy: Timestamp(s) gating the age test.

        Returns:
            The verdict together with the probe snapshot (None if the probe
            failed, in which case the verdict is UNKNOWN).
        """
        logger.debug("check_path: %s", path)
        try:
            metadata = self._prober.probe(path)
        except OSError as e:
            logger.info("Unable to stat %s (errno = %d)", path, e.errno or 0)
            return PathCheck(path=path, verdict=Verdict.UNKNOWN, metadata=None)

        verdict = self.evaluate(path, metadata, policy)
        return PathCheck(path=path, verdict=verdict, metadata=metadata)

    def check_path(self, path: str, policy: TimestampPolicy) -> Verdict:
        """Probe path and decide whether it may be removed."""
        return self.inspect(path, policy).verdict

    def evaluate(self, path: str, metadata: PathMetadata, policy: TimestampPolicy) -> Verdict:
        """Run the tests against an existing snapshot.

        Root exclusion comes first, then the age test, then each
        registered predicate until one is not ELIGIBLE.
        """
        if self.exclude_root and (metadata.uid == 0 or metadata.gid == 0):
            return Verdict.INELIGIBLE

        if governing_timestamp(metadata, policy) >= self.threshold:
            return Verdict.INELIGIBLE

        verdict = Verdict.ELIGIBLE
        for name, predicate in self._predicates.items():
            verdict = predicate(path, metadata)
            logger.debug("check_path: %s(%s) = %s", name, path, verdict.value)
            if verdict != Verdict.ELIGIBLE:
                break
        return verdict


# =============================================================================
# Standard predicates
# =============================================================================


def reject_sockets(path: str, metadata: PathMetadata) -> Verdict:
    """Sockets are never removed."""
    if metadata.path_type == PathType.SOCKET:
        return Verdict.INELIGIBLE
    return Verdict.ELIGIBLE


def reject_fifos(path: str, metadata: PathMetadata) -> Verdict:
    """FIFOs are never removed."""
    if metadata.path_type == PathType.FIFO:
        return Verdict.INELIGIBLE
    return Verdict.ELIGIBLE


def reject_sockets_and_fifos(path: str, metadata: PathMetadata) -> Verdict:
    """Neither sockets nor FIFOs are removed."""
    if metadata.path_type in (PathType.SOCKET, PathType.FIFO):
        return Verdict.INELIGIBLE
    return Verdict.ELIGIBLE


def exclude_paths(paths: Iterable[str]) -> Predicate:
    """Build a predicate rejecting an explicit set of canonical paths."""
    excluded = frozenset(paths)

    def predicate(path: str, metadata: PathMetadata) -> Verdict:
        return Verdict.INELIGIBLE if path in excluded else Verdict.ELIGIBLE

    return predicate


def exclude_uids(uids: Iterable[int]) -> Predicate:
    """Build a predicate rejecting entities owned by any of uids."""
    excluded = frozenset(uids)

    def predicate(path: str, metadata: PathMetadata) -> Verdict:
        return Verdict.INELIGIBLE if metadata.uid in excluded else Verdict.ELIGIBLE

    return predicate


def exclude_gids(gids: Iterable[int]) -> Predicate:
    """Build a predicate rejecting entities whose group is any of gids."""
    excluded = frozenset(gids)

    def predicate(path: str, metadata: PathMetadata) -> Verdict:
        return Verdict.INELIGIBLE if metadata.gid in excluded else Verdict.ELIGIBLE

    return predicate


# =============================================================================
# Chain construction from configuration
# =============================================================================


def resolve_uid(value: str) -> int:
    """Resolve a user name or numeric uid.

    Raises:
        ConfigError: If the user is unknown or the uid is not positive.
    """
    if value.isdigit():
        uid = int(value)
    else:
        try:
            uid = pwd.getpwnam(value).pw_uid
        except KeyError:
            raise ConfigError(f"No such user: {value}") from None
    if uid <= 0:
        raise ConfigError(f"Excluded uid must be positive: {value}")
    return uid


def resolve_gid(value: str) -> int:
    """Resolve a group name or numeric gid.

    Raises:
        ConfigError: If the group is unknown or the gid is not positive.
    """
    if value.isdigit():
        gid = int(value)
    else:
        try:
            gid = grp.getgrnam(value).gr_gid
        except KeyError:
            raise ConfigError(f"No such group: {value}") from None
    if gid <= 0:
        raise ConfigError(f"Excluded gid must be positive: {value}")
    return gid


def canonical_exclusions(paths: Iterable[str]) -> list[str]:
    """Canonicalize excluded paths, dropping (and logging) ones that do not exist."""
    canonical: list[str] = []
    for raw in paths:
        if not raw:
            continue
        try:
            canonical.append(str(Path(raw).expanduser().resolve(strict=True)))
        except OSError as e:
            logger.warning("Ignoring exclusion of nonexistent path %s (%s)", raw, e.strerror)
    return canonical


def build_chain(
    config: CleanupConfig,
    prober: Prober,
    *,
    threshold: float | None = None,
) -> EligibilityChain:
    """Build the test chain a cleanup run uses.

    Args:
        config: Cleanup settings.
        prober: Rate-limited probe shared with the engine.
        threshold: Age cutoff; computed from config when omitted.

    Raises:
        ConfigError: If an excluded user or group cannot be resolved.
    """
    if threshold is None:
        threshold = compute_threshold(config.days, config.epoch)
    chain = EligibilityChain(threshold, prober, exclude_root=config.exclude_root)

    if config.special_files == SpecialFilePolicy.BOTH:
        logger.info("Socket and FIFO files will short-circuit directory removal")
        chain.register("isPipeOrSocket", reject_sockets_and_fifos)
    elif config.special_files == SpecialFilePolicy.SOCKETS:
        logger.info("Socket files will short-circuit directory removal (FIFO files will not)")
        chain.register("isSocket", reject_sockets)
    elif config.special_files == SpecialFilePolicy.FIFOS:
        logger.info("FIFO files will short-circuit directory removal (socket files will not)")
        chain.register("isFIFO", reject_fifos)
    else:
        logger.info("Socket and FIFO files will not short-circuit directory removal")

    excluded_paths = canonical_exclusions(config.exclude_paths)
    if excluded_paths:
        for path in excluded_paths:
            logger.info("Path excluded from cleanup: %s", path)
        chain.excluded_paths = frozenset(excluded_paths)
        chain.register("pathExclusions", exclude_paths(excluded_paths))

    uids = sorted({resolve_uid(u) for u in config.exclude_users})
    if uids:
        for uid in uids:
            logger.info("UID excluded from cleanup: %d", uid)
        chain.register("userExclusions", exclude_uids(uids))

    gids = sorted({resolve_gid(g) for g in config.exclude_groups})
    if gids:
        for gid in gids:
            logger.info("GID excluded from cleanup: %d", gid)
        chain.register("groupExclusions", exclude_gids(gids))

    return chain

