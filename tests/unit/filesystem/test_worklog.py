"""Unit tests for the SQLite work log."""

from pathlib import Path

import pytest
from scratchctl.filesystem.worklog import Worklog, WorklogError, path_starts_with


class TestPathStartsWith:
    """Tests for the separator-anchored prefix predicate."""

    @pytest.mark.parametrize(
        ("candidate", "prefix", "expected"),
        [
            ("/a/b/c", "/a/b", 1),
            ("/a/b/c/d", "/a/b", 1),
            ("/a/b2", "/a/b", 0),
            ("/a/b", "/a/b", 0),
            ("/a", "/a/b", 0),
            ("/a/b/c", "/a/b/", 1),
            ("/a/b/", "/a/b/", 0),
            (None, "/a", 0),
            ("/a/b", "", 0),
        ],
    )
    def test_cases(self, candidate: str | None, prefix: str, expected: int) -> None:
        assert path_starts_with(candidate, prefix) == expected


class TestAdd:
    """Tests for queuing entries."""

    def test_entries_in_insertion_order(self) -> None:
        with Worklog() as worklog:
            assert worklog.add("/s/a", "/s/.q-a")
            assert worklog.add("/s/b", "/s/.q-b")

            entries = worklog.entries()

        assert [e.original_path for e in entries] == ["/s/a", "/s/b"]
        assert entries[0].id < entries[1].id

    def test_ancestor_prunes_descendants(self) -> None:
        """Adding a directory drops every queued path beneath it."""
        with Worklog() as worklog:
            worklog.add("/s/a/x", "/s/a/.q-x")
            worklog.add("/s/a/y/z", "/s/a/y/.q-z")
            worklog.add("/s/a2", "/s/.q-a2")
            worklog.add("/s/a", "/s/.q-a")

            paths = [e.original_path for e in worklog.entries()]

        assert paths == ["/s/a2", "/s/a"]

    def test_duplicate_is_rejected(self) -> None:
        """A path queued twice fails without raising."""
        with Worklog() as worklog:
            assert worklog.add("/s/a", "/s/.q-a")
            assert worklog.add("/s/a", "/s/.q-other") is False


class TestTransactions:
    """Tests for scan_complete and complete."""

    def test_discard_rolls_back_scan(self) -> None:
        with Worklog() as worklog:
            worklog.add("/s/a", "/s/.q-a")
            worklog.scan_complete()
            worklog.add("/s/b", "/s/.q-b")
            assert worklog.scan_complete(discard=True)

            assert [e.original_path for e in worklog.entries()] == ["/s/a"]

    def test_peek_complete_pop(self) -> None:
        with Worklog() as worklog:
            worklog.add("/s/a", "/s/.q-a")
            worklog.add("/s/b", "/s/.q-b")
            worklog.scan_complete()

            first = worklog.peek()
            assert first is not None
            assert worklog.peek() == first
            worklog.complete(first)

            second = worklog.pop()
            assert second is not None
            assert second.original_path == "/s/b"
            assert worklog.peek() is None
            assert worklog.pop() is None
            assert len(worklog) == 0


class TestPersistence:
    """Tests for on-disk logs."""

    def test_kept_log_can_be_resumed(self, tmp_path: Path) -> None:
        """A kept log keeps committed entries, including partial drains."""
        path = tmp_path / "worklog.db"
        worklog = Worklog(path)
        worklog.add("/s/a", "/s/.q-a")
        worklog.add("/s/b", "/s/.q-b")
        worklog.scan_complete()
        worklog.complete(worklog.peek())
        worklog.close(keep=True)

        assert path.exists()
        with Worklog(path, reset=False, keep=True) as resumed:
            assert [e.original_path for e in resumed.entries()] == ["/s/b"]

    def test_keep_commits_pending_entries(self, tmp_path: Path) -> None:
        """Directories already renamed stay queued when a kept log is closed early."""
        path = tmp_path / "worklog.db"
        worklog = Worklog(path)
        worklog.add("/s/a", "/s/.q-a")
        worklog.close(keep=True)

        with Worklog(path, reset=False, keep=True) as resumed:
            assert len(resumed) == 1

    def test_reset_drops_old_entries(self, tmp_path: Path) -> None:
        path = tmp_path / "worklog.db"
        worklog = Worklog(path)
        worklog.add("/s/a", "/s/.q-a")
        worklog.scan_complete()
        worklog.close(keep=True)

        with Worklog(path) as fresh:
            assert len(fresh) == 0

    def test_close_without_keep_deletes_file(self, tmp_path: Path) -> None:
        path = tmp_path / "worklog.db"
        with Worklog(path) as worklog:
            worklog.add("/s/a", "/s/.q-a")
            assert path.exists()
        assert not path.exists()

    def test_close_is_idempotent(self, tmp_path: Path) -> None:
        worklog = Worklog(tmp_path / "worklog.db")
        worklog.close()
        worklog.close(keep=True)
        assert not (tmp_path / "worklog.db").exists()

    def test_resume_requires_file(self, tmp_path: Path) -> None:
        with pytest.raises(WorklogError, match="not found"):
            Worklog(tmp_path / "missing.db", reset=False)

    def test_unopenable_path(self, tmp_path: Path) -> None:
        with pytest.raises(WorklogError):
            Worklog(tmp_path / "no" / "such" / "dir" / "worklog.db")

    def test_in_memory_flag(self, tmp_path: Path) -> None:
        with Worklog() as memory, Worklog(tmp_path / "w.db") as disk:
            assert memory.in_memory
            assert not disk.in_memory
