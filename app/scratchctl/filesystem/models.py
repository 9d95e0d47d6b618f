"""Filesystem domain models for eligibility scanning and removal.

This module defines the core data structures shared by the probe layer,
the eligibility test chain, the work log and the removal code: tri-state
outcomes, metadata snapshots and work log records.
"""

import os
import stat
from dataclasses import dataclass
from enum import Enum


class Verdict(str, Enum):
    """Outcome of testing one filesystem entity for removal.

    Attributes:
        UNKNOWN: Could not be determined (e.g. the probe failed). Never
            treated as eligible.
        INELIGIBLE: Must not be removed.
        ELIGIBLE: May be removed.
    """

    UNKNOWN = "unknown"
    INELIGIBLE = "ineligible"
    ELIGIBLE = "eligible"


class RemoveStatus(str, Enum):
    """Terminal outcome of a removal.

    Attributes:
        SUCCEEDED: Everything was removed (or was already gone).
        FAILED: A removal error aborted the subtree.
        DECLINED: The operator answered "no" to a prompt. Not an error.
    """

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DECLINED = "declined"


class PathType(str, Enum):
    """Type of filesystem entry, as seen by lstat()."""

    DIRECTORY = "directory"
    FILE = "file"
    SYMLINK = "symlink"
    SOCKET = "socket"
    FIFO = "fifo"
    CHAR_DEVICE = "char_device"
    BLOCK_DEVICE = "block_device"
    UNKNOWN = "unknown"

    @classmethod
    def from_mode(cls, mode: int) -> "PathType":
        """Classify an st_mode value."""
        if stat.S_ISDIR(mode):
            return cls.DIRECTORY
        if stat.S_ISREG(mode):
            return cls.FILE
        if stat.S_ISLNK(mode):
            return cls.SYMLINK
        if stat.S_ISSOCK(mode):
            return cls.SOCKET
        if stat.S_ISFIFO(mode):
            return cls.FIFO
        if stat.S_ISCHR(mode):
            return cls.CHAR_DEVICE
        if stat.S_ISBLK(mode):
            return cls.BLOCK_DEVICE
        return cls.UNKNOWN

    @property
    def description(self) -> str:
        """Human-readable kind, as used in removal prompts."""
        return _TYPE_DESCRIPTIONS[self]


_TYPE_DESCRIPTIONS: dict[PathType, str] = {
    PathType.DIRECTORY: "directory",
    PathType.FILE: "regular file",
    PathType.SYMLINK: "symbolic link",
    PathType.SOCKET: "socket",
    PathType.FIFO: "fifo",
    PathType.CHAR_DEVICE: "character device",
    PathType.BLOCK_DEVICE: "block device",
    PathType.UNKNOWN: "unknown file type",
}


@dataclass(frozen=True, slots=True)
class PathMetadata:
    """Metadata snapshot of one filesystem entity.

    Captured once per probe and reused for both the age test and the
    test chain. Symbolic links are never followed.

    Attributes:
        path_type: Kind of entity.
        uid: Owning user id.
        gid: Owning group id.
        size: Size in bytes (st_size).
        mtime: Last-modified time (seconds since the epoch).
        atime: Last-accessed time (seconds since the epoch).
    """

    path_type: PathType
    uid: int
    gid: int
    size: int
    mtime: float
    atime: float

    @classmethod
    def from_stat(cls, st: os.stat_result) -> "PathMetadata":
        """Build a snapshot from an os.lstat() result."""
        return cls(
            path_type=PathType.from_mode(st.st_mode),
            uid=st.st_uid,
            gid=st.st_gid,
            size=st.st_size,
            mtime=st.st_mtime,
            atime=st.st_atime,
        )

    @property
    def is_directory(self) -> bool:
        """True for directories (never for symlinks to directories)."""
        return self.path_type == PathType.DIRECTORY


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    """One name returned by a directory listing.

    Attributes:
        name: Basename of the entry.
        path: Full path of the entry.
        is_dir: True if the entry is a directory (symlinks not followed).
    """

    name: str
    path: str
    is_dir: bool


@dataclass(frozen=True, slots=True)
class PathCheck:
    """Result of running the eligibility tests on one path.

    Attributes:
        path: Path that was tested.
        verdict: Eligibility outcome.
        metadata: Probe snapshot, or None if the probe failed.
    """

    path: str
    verdict: Verdict
    metadata: PathMetadata | None


@dataclass(frozen=True, slots=True)
class WorklogEntry:
    """A quarantined directory queued for final removal.

    Attributes:
        id: Auto-increment identifier; lower ids were queued earlier.
        original_path: Path the directory had when it was judged eligible.
        quarantine_path: Path the directory was renamed to.
    """

    id: int
    original_path: str
    quarantine_path: str

    def __post_init__(self) -> None:
        """Validate entry data after initialization."""
        if not self.original_path or not self.quarantine_path:
            msg = "Work log entry paths cannot be empty"
            raise ValueError(msg)

