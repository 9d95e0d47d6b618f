"""SQLite-backed work log of quarantined directories.

The work log records every directory the scan phase renamed into
quarantine, so that the drain phase can remove them later. It is held in
memory by default, or in a file when a run should be resumable.

Inserting a directory drops every entry for a path beneath it, so no two
live entries ever overlap: removing the ancestor removes the descendants.

Scan-phase writes happen inside one transaction per top-level path,
committed or rolled back by scan_complete(). Drain-phase deletions are
committed one entry at a time.

Usage:
    with Worklog() as worklog:
        worklog.add("/scratch/u/old", "/scratch/u/.scratchctl202610191430-old")
        worklog.scan_complete()
        while (entry := worklog.peek()) is not None:
            ...
            worklog.complete(entry)
"""

import logging
import sqlite3
from pathlib import Path
from types import TracebackType

from scratchctl.filesystem.models import WorklogEntry

logger = logging.getLogger(__name__)

# ── SQL Statements ──────────────────────────────────────────────────────────

CREATE_WORKLOG_TABLE = """
CREATE TABLE IF NOT EXISTS worklog (
    pathId      INTEGER PRIMARY KEY,
    origPath    TEXT UNIQUE NOT NULL,
    altPath     TEXT UNIQUE NOT NULL
)
"""

DROP_WORKLOG_TABLE = "DROP TABLE IF EXISTS worklog"

INSERT_ENTRY_SQL = "INSERT INTO worklog (origPath, altPath) VALUES (?, ?)"

PRUNE_DESCENDANTS_SQL = "DELETE FROM worklog WHERE pathStartsWith(origPath, ?) <> 0"

SELECT_OLDEST_SQL = "SELECT pathId, origPath, altPath FROM worklog ORDER BY pathId ASC LIMIT 1"

SELECT_ALL_SQL = "SELECT pathId, origPath, altPath FROM worklog ORDER BY pathId ASC"

COUNT_SQL = "SELECT COUNT(*) FROM worklog"

DELETE_ENTRY_SQL = "DELETE FROM worklog WHERE pathId = ?"


def path_starts_with(candidate: str | None, prefix: str | None) -> int:
    """SQL predicate: 1 if candidate lies strictly beneath prefix, else 0.

    The match is anchored on a path separator, so "/a/b2" is not beneath
    "/a/b" while "/a/b/c" is.
    """
    if not candidate or not prefix:
        return 0
    if prefix.endswith("/"):
        return int(len(candidate) > len(prefix) and candidate.startswith(prefix))
    if len(candidate) <= len(prefix) or not candidate.startswith(prefix):
        return 0
    return int(candidate[len(prefix)] == "/")


def _row_to_entry(row: tuple[int, str, str]) -> WorklogEntry:
    path_id, original_path, quarantine_path = row
    return WorklogEntry(id=path_id, original_path=original_path, quarantine_path=quarantine_path)


class WorklogError(Exception):
    """Raised when the work log backing store cannot be used."""


class Worklog:
    """Durable, transactional queue of quarantined directories.

    Args:
        path: Database file, or None to keep the log in memory.
        reset: Drop any existing log found in the file. When False the
            file must already exist, and its entries are kept (used to
            resume a drain).
        keep: Commit and keep the file when the log is closed via the
            context manager.

    Raises:
        WorklogError: If the database cannot be opened or initialized.
    """

    def __init__(self, path: Path | None = None, *, reset: bool = True, keep: bool = False) -> None:
        self.path = path
        self.keep = keep
        self._closed = False

        if path is not None and not reset and not path.is_file():
            raise WorklogError(f"Work log not found: {path}")

        extant = path is not None and path.is_file()
        try:
            self._conn = sqlite3.connect(
                str(path) if path is not None else ":memory:",
                isolation_level=None,
            )
        except sqlite3.Error as e:
            raise WorklogError(f"Unable to open work log {path}: {e}") from e

        try:
            self._conn.create_function("pathStartsWith", 2, path_starts_with, deterministic=True)
            if extant and reset:
                self._conn.execute(DROP_WORKLOG_TABLE)
                logger.debug("Dropped extant work log table in %s", path)
            self._conn.execute(CREATE_WORKLOG_TABLE)
            self._conn.execute("BEGIN")
        except sqlite3.Error as e:
            self._conn.close()
            raise WorklogError(f"Unable to initialize work log {path}: {e}") from e

    @property
    def in_memory(self) -> bool:
        """True if the log has no backing file."""
        return self.path is None

    def add(self, original_path: str, quarantine_path: str) -> bool:
        """Queue a quarantined directory, dropping entries beneath it.

        Args:
            original_path: Path the directory had when judged eligible.
            quarantine_path: Path the directory was renamed to.

        Returns:
            True if the entry was recorded. False means the scan
            transaction must be discarded.
        """
        try:
            self._conn.execute(INSERT_ENTRY_SQL, (original_path, quarantine_path))
        except sqlite3.Error as e:
            logger.error(
                "Unable to add path to work log (%s): (%s, %s)", e, original_path, quarantine_path
            )
            return False

        try:
            cursor = self._conn.execute(PRUNE_DESCENDANTS_SQL, (original_path,))
        except sqlite3.Error as e:
            logger.warning(
                "Unable to remove descendant paths from work log (%s): %s", e, original_path
            )
            return False
        if cursor.rowcount > 0:
            logger.debug("Dropped %d work log entries beneath %s", cursor.rowcount, original_path)
        return True

    def scan_complete(self, discard: bool = False) -> bool:
        """End the current scan transaction and start a new one.

        Args:
            discard: Roll back everything added since the last call
                instead of committing it.

        Returns:
            True on success.
        """
        try:
            self._conn.execute("ROLLBACK" if discard else "COMMIT")
            self._conn.execute("BEGIN")
        except sqlite3.Error as e:
            logger.error("Unable to complete work log transaction: %s", e)
            return False
        return True

    def peek(self) -> WorklogEntry | None:
        """Oldest live entry, or None when the log is empty.

        Raises:
            WorklogError: If the log cannot be read.
        """
        try:
            row = self._conn.execute(SELECT_OLDEST_SQL).fetchone()
        except sqlite3.Error as e:
            raise WorklogError(f"Unable to retrieve next path from work log: {e}") from e
        return _row_to_entry(row) if row is not None else None

    def complete(self, entry: WorklogEntry) -> None:
        """Delete a drained entry and commit the deletion.

        Raises:
            WorklogError: If the entry cannot be deleted.
        """
        try:
            self._conn.execute(DELETE_ENTRY_SQL, (entry.id,))
            self._conn.execute("COMMIT")
            self._conn.execute("BEGIN")
        except sqlite3.Error as e:
            raise WorklogError(f"Unable to remove path from work log ({entry.id}): {e}") from e
        logger.debug("Work log entry %d completed: %s", entry.id, entry.quarantine_path)

    def pop(self) -> WorklogEntry | None:
        """Remove and return the oldest live entry, or None when empty."""
        entry = self.peek()
        if entry is not None:
            self.complete(entry)
        return entry

    def entries(self) -> list[WorklogEntry]:
        """All live entries, oldest first."""
        try:
            rows = self._conn.execute(SELECT_ALL_SQL).fetchall()
        except sqlite3.Error as e:
            raise WorklogError(f"Unable to read work log: {e}") from e
        return [_row_to_entry(row) for row in rows]

    def __len__(self) -> int:
        try:
            return self._conn.execute(COUNT_SQL).fetchone()[0]
        except sqlite3.Error as e:
            raise WorklogError(f"Unable to read work log: {e}") from e

    def close(self, keep: bool = False) -> None:
        """Close the log.

        Args:
            keep: Commit pending changes and keep the file. Otherwise
                pending changes are rolled back and the file is deleted.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self._conn.execute("COMMIT" if keep else "ROLLBACK")
        except sqlite3.Error as e:
            logger.warning("Unable to end work log transaction: %s", e)
        finally:
            self._conn.close()

        if self.path is None:
            return
        if keep:
            logger.info("Work log not deleted: %s", self.path)
        else:
            self.path.unlink(missing_ok=True)
            logger.debug("Work log deleted: %s", self.path)

    def __enter__(self) -> "Worklog":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close(keep=self.keep)
