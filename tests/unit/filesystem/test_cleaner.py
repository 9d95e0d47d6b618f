"""Unit tests for the two-phase cleanup engine.

Every engine here is built with exclude_root off unless a test is about
root ownership, since the suite may well run as root.
"""

import dataclasses
import errno
import logging
import os
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest
from scratchctl.core.config import CleanupConfig
from scratchctl.filesystem.cleaner import CleanupEngine, PathOutcome
from scratchctl.filesystem.eligibility import build_chain
from scratchctl.filesystem.models import (
    DirectoryEntry,
    PathMetadata,
    RemoveStatus,
    Verdict,
    WorklogEntry,
)
from scratchctl.filesystem.probe import Prober
from scratchctl.filesystem.quarantine import QuarantineNamer
from scratchctl.filesystem.remover import Remover
from scratchctl.filesystem.worklog import Worklog

STARTED = datetime(2026, 10, 19, 14, 30)
PREFIX = ".scratchctl202610191430-"

_real_probe = Prober.probe
_real_list_directory = Prober.list_directory


def _engine(**settings: object) -> CleanupEngine:
    settings.setdefault("exclude_root", False)
    engine = CleanupEngine.from_config(CleanupConfig(**settings))
    engine.namer = QuarantineNamer(STARTED)
    return engine


@pytest.fixture
def root(scratch: Path, make_file: Callable[..., Path]) -> str:
    """A scratch tree mixing old, young and partly old directories.

    Only old/ and mixed/oldsub/ hold nothing but old content.
    """
    make_file(scratch / "old" / "f.txt", days=60)
    make_file(scratch / "old" / "sub" / "g.txt", days=90)
    make_file(scratch / "young" / "h.txt", days=1)
    make_file(scratch / "mixed" / "old.txt", days=60)
    make_file(scratch / "mixed" / "new.txt", days=2)
    make_file(scratch / "mixed" / "oldsub" / "x.txt", days=45)
    return os.path.realpath(scratch)


def _queued(outcome: PathOutcome) -> set[str]:
    return {result.entry.original_path for result in outcome.drained}


class _OwnerProber(Prober):
    """Prober reporting uid/gid 1000, or 0 for the given paths."""

    def __init__(self, root_owned: set[str]) -> None:
        super().__init__()
        self.root_owned = root_owned

    def probe(self, path: str) -> PathMetadata:
        owner = 0 if path in self.root_owned else 1000
        return dataclasses.replace(super().probe(path), uid=owner, gid=owner)


class TestCleanPath:
    """Tests for scanning and draining one top-level directory."""

    def test_removes_only_fully_old_directories(self, root: str) -> None:
        engine = _engine(dry_run=False)

        with Worklog() as worklog:
            outcome = engine.clean_path(root, worklog)

        assert outcome.error is None
        assert outcome.verdict == Verdict.INELIGIBLE
        assert outcome.queued == 2
        assert _queued(outcome) == {f"{root}/old", f"{root}/mixed/oldsub"}
        assert all(r.status == RemoveStatus.SUCCEEDED for r in outcome.drained)

        assert sorted(os.listdir(root)) == ["mixed", "young"]
        assert sorted(os.listdir(f"{root}/mixed")) == ["new.txt", "old.txt"]
        assert os.path.exists(f"{root}/young/h.txt")

    def test_quarantine_names(self, root: str) -> None:
        """Each queued directory was renamed in place with the run's stamp."""
        engine = _engine(dry_run=False, work_log_only=True)

        with Worklog() as worklog:
            engine.clean_path(root, worklog)
            entries = {e.original_path: e.quarantine_path for e in worklog.entries()}

        assert entries == {
            f"{root}/old": f"{root}/{PREFIX}old",
            f"{root}/mixed/oldsub": f"{root}/mixed/{PREFIX}oldsub",
        }

    def test_nested_entries_are_collapsed(self, scratch: Path, make_file) -> None:
        """A queued ancestor drops its queued descendants from the log."""
        make_file(scratch / "a" / "b" / "c" / "f.txt", days=60)
        root = os.path.realpath(scratch)
        engine = _engine(dry_run=False, work_log_only=True)

        with Worklog() as worklog:
            outcome = engine.clean_path(root, worklog)
            entries = worklog.entries()

        assert outcome.queued == 1
        assert [e.original_path for e in entries] == [f"{root}/a"]
        # the descendants moved along with their renamed ancestor
        assert os.path.exists(f"{root}/{PREFIX}a/{PREFIX}b/{PREFIX}c/f.txt")

    def test_empty_directory_is_removed(self, scratch: Path) -> None:
        (scratch / "empty").mkdir()
        engine = _engine(dry_run=False)

        with Worklog() as worklog:
            outcome = engine.clean_path(str(scratch), worklog)

        assert outcome.queued == 1
        assert os.listdir(scratch) == []

    def test_top_level_is_never_removed(self, scratch: Path, make_file) -> None:
        make_file(scratch / "f.txt", days=60)
        engine = _engine(dry_run=False)

        with Worklog() as worklog:
            outcome = engine.clean_path(str(scratch), worklog)

        assert outcome.verdict == Verdict.ELIGIBLE
        assert outcome.queued == 0
        assert scratch.is_dir()
        assert (scratch / "f.txt").exists()

    def test_dry_run_queues_same_directories(self, root: str) -> None:
        """A dry run reports exactly what a real run removes, and changes nothing."""
        before = sorted(str(p) for p in Path(root).rglob("*"))

        with Worklog() as worklog:
            preview = _engine().clean_path(root, worklog)
            assert len(worklog) == 2

        assert sorted(str(p) for p in Path(root).rglob("*")) == before
        assert all(r.dry_run for r in preview.drained)

        with Worklog() as worklog:
            real = _engine(dry_run=False).clean_path(root, worklog)

        assert _queued(preview) == _queued(real)

    def test_work_log_only_leaves_quarantine(self, root: str) -> None:
        engine = _engine(dry_run=False, work_log_only=True)

        with Worklog() as worklog:
            outcome = engine.clean_path(root, worklog)

        assert outcome.drained == []
        assert outcome.queued == 2
        assert os.path.exists(f"{root}/{PREFIX}old/f.txt")

    def test_previous_run_directories_are_not_queued_again(
        self, scratch: Path, make_file, caplog: pytest.LogCaptureFixture
    ) -> None:
        """An old quarantine-named directory is left alone and keeps its parent eligible."""
        earlier = ".scratchctl202001010000-left"
        make_file(scratch / "p" / earlier / "old.txt", days=60)
        make_file(scratch / "p" / "f.txt", days=60)
        root = os.path.realpath(scratch)
        engine = _engine(work_log_only=True)

        with caplog.at_level(logging.WARNING), Worklog() as worklog:
            engine.clean_path(root, worklog)
            paths = [e.original_path for e in worklog.entries()]

        assert paths == [f"{root}/p"]
        assert f"Directory flagged by previous run: {root}/p/{earlier}" in caplog.text

    def test_previous_run_directories_are_still_checked(self, scratch: Path, make_file) -> None:
        """Young content inside a quarantine-named directory keeps everything above it."""
        earlier = ".scratchctl202001010000-left"
        make_file(scratch / "p" / earlier / "young.txt", days=0)
        make_file(scratch / "p" / "f.txt", days=60)
        make_file(scratch / "q" / "g.txt", days=60)
        root = os.path.realpath(scratch)
        engine = _engine(dry_run=False)

        with Worklog() as worklog:
            outcome = engine.clean_path(root, worklog)

        assert _queued(outcome) == {f"{root}/q"}
        assert os.path.exists(f"{root}/p/{earlier}/young.txt")
        assert os.path.exists(f"{root}/p/f.txt")

    def test_unlistable_subdirectory_keeps_parent(self, scratch: Path, make_file) -> None:
        """A nested directory that cannot be read disqualifies its parent only."""
        make_file(scratch / "a" / "locked" / "f.txt", days=60)
        make_file(scratch / "a" / "g.txt", days=60)
        make_file(scratch / "b" / "h.txt", days=60)
        root = os.path.realpath(scratch)
        locked = f"{root}/a/locked"
        engine = _engine(dry_run=False)

        def list_directory(self: Prober, path: str) -> list[DirectoryEntry]:
            if path == locked:
                raise PermissionError(errno.EACCES, "Permission denied", path)
            return _real_list_directory(self, path)

        with patch.object(Prober, "list_directory", list_directory), Worklog() as worklog:
            outcome = engine.clean_path(root, worklog)

        assert outcome.error is None
        assert _queued(outcome) == {f"{root}/b"}
        assert not os.path.exists(f"{root}/b")
        assert os.path.exists(f"{locked}/f.txt")
        assert os.path.exists(f"{root}/a/g.txt")

    def test_unprobeable_file_keeps_directory(
        self, scratch: Path, make_file, caplog: pytest.LogCaptureFixture
    ) -> None:
        make_file(scratch / "a" / "f.txt", days=60)
        make_file(scratch / "a" / "g.txt", days=60)
        make_file(scratch / "b" / "h.txt", days=60)
        root = os.path.realpath(scratch)
        hidden = f"{root}/a/f.txt"
        engine = _engine(dry_run=False)

        def probe(self: Prober, path: str) -> PathMetadata:
            if path == hidden:
                raise PermissionError(errno.EACCES, "Permission denied", path)
            return _real_probe(self, path)

        with (
            patch.object(Prober, "probe", probe),
            caplog.at_level(logging.INFO),
            Worklog() as worklog,
        ):
            outcome = engine.clean_path(root, worklog)

        assert _queued(outcome) == {f"{root}/b"}
        assert os.path.exists(hidden)
        assert f"Directory removal short-circuited by file {hidden}" in caplog.text

    def test_excluded_subdirectory(self, scratch: Path, make_file) -> None:
        """An excluded directory is kept, and so is everything above it."""
        make_file(scratch / "a" / "keep" / "f.txt", days=60)
        make_file(scratch / "a" / "g.txt", days=60)
        make_file(scratch / "b" / "h.txt", days=60)
        root = os.path.realpath(scratch)
        engine = _engine(dry_run=False, exclude_paths=(f"{root}/a/keep",))

        with Worklog() as worklog:
            outcome = engine.clean_path(root, worklog)

        assert _queued(outcome) == {f"{root}/b"}
        assert os.path.exists(f"{root}/a/keep/f.txt")
        assert os.path.exists(f"{root}/a/g.txt")

    def test_excluded_top_level(self, root: str, caplog: pytest.LogCaptureFixture) -> None:
        engine = _engine(dry_run=False, exclude_paths=(root,))

        with caplog.at_level(logging.ERROR), Worklog() as worklog:
            outcome = engine.clean_path(root, worklog)

        assert outcome.verdict is None
        assert outcome.queued == 0
        assert f"The directory {root} is set to be excluded!" in caplog.text

    def test_root_owned_file_keeps_directory(self, scratch: Path, make_file) -> None:
        make_file(scratch / "a" / "mine.txt", days=60)
        make_file(scratch / "a" / "roots.txt", days=60)
        make_file(scratch / "b" / "mine.txt", days=60)
        root = os.path.realpath(scratch)
        config = CleanupConfig(dry_run=False, exclude_root=True)
        prober = _OwnerProber({f"{root}/a/roots.txt"})
        engine = CleanupEngine(
            config,
            chain=build_chain(config, prober),
            prober=prober,
            remover=Remover(prober, dry_run=False),
            namer=QuarantineNamer(STARTED),
        )

        with Worklog() as worklog:
            outcome = engine.clean_path(root, worklog)

        assert _queued(outcome) == {f"{root}/b"}
        assert os.path.exists(f"{root}/a/roots.txt")

    def test_rename_failure_keeps_parent(
        self, scratch: Path, make_file, caplog: pytest.LogCaptureFixture
    ) -> None:
        make_file(scratch / "a" / "b" / "f.txt", days=60)
        root = os.path.realpath(scratch)
        engine = _engine(dry_run=False)

        denied = PermissionError(errno.EACCES, "Permission denied")
        with (
            patch("scratchctl.filesystem.cleaner.os.rename", side_effect=denied),
            caplog.at_level(logging.ERROR),
            Worklog() as worklog,
        ):
            outcome = engine.clean_path(root, worklog)

        assert outcome.queued == 0
        assert os.path.exists(f"{root}/a/b/f.txt")
        assert "Unable to rename removal target" in caplog.text

    def test_unreadable_top_level_discards_scan(self, root: str) -> None:
        engine = _engine(dry_run=False)

        with (
            patch.object(
                Prober, "list_directory", side_effect=PermissionError(errno.EACCES, "denied")
            ),
            Worklog() as worklog,
        ):
            outcome = engine.clean_path(root, worklog)

        assert outcome.verdict == Verdict.UNKNOWN
        assert outcome.error == "Unable to scan directory"
        assert outcome.failed

    def test_worklog_failure_discards_scan(self, root: str) -> None:
        engine = _engine()

        with patch.object(Worklog, "add", return_value=False), Worklog() as worklog:
            outcome = engine.clean_path(root, worklog)

        assert outcome.error is not None
        assert outcome.queued == 0
        assert outcome.drained == []

    def test_drain_failure_is_reported(self, scratch: Path, make_file) -> None:
        make_file(scratch / "a" / "f.txt", days=60)
        root = os.path.realpath(scratch)
        engine = _engine(dry_run=False)

        def failing_unlink(path: str) -> None:
            raise PermissionError(errno.EACCES, "Permission denied", path)

        with patch.object(os, "unlink", failing_unlink), Worklog() as worklog:
            outcome = engine.clean_path(root, worklog)
            remaining = len(worklog)

        assert outcome.failed
        [result] = outcome.drained
        assert result.error_code == errno.EACCES
        assert f"{PREFIX}a/f.txt" in (result.error or "")
        # handled entries leave the log whatever the outcome
        assert remaining == 0


class TestDrain:
    """Tests for draining a work log on its own."""

    def test_drains_oldest_first(self, scratch: Path) -> None:
        for name in ("q1", "q2"):
            (scratch / name).mkdir()
            (scratch / name / "f").write_text("x")
        engine = _engine(dry_run=False)

        with Worklog() as worklog:
            worklog.add("/orig/q1", str(scratch / "q1"))
            worklog.add("/orig/q2", str(scratch / "q2"))
            worklog.scan_complete()
            results = engine.drain(worklog)
            assert len(worklog) == 0

        assert [r.entry.original_path for r in results] == ["/orig/q1", "/orig/q2"]
        assert os.listdir(scratch) == []
        assert engine.bytes_freed >= 2

    def test_missing_quarantine_directory_counts_as_done(
        self, scratch: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        engine = _engine(dry_run=False)

        with caplog.at_level(logging.WARNING), Worklog() as worklog:
            worklog.add("/orig/gone", str(scratch / "gone"))
            [result] = engine.drain(worklog)

        assert result.status == RemoveStatus.SUCCEEDED
        assert "Queued directory already gone" in caplog.text

    def test_dry_run_leaves_log_intact(self) -> None:
        engine = _engine()

        with Worklog() as worklog:
            worklog.add("/orig/a", "/q/a")
            results = engine.drain(worklog)
            assert len(worklog) == 1

        assert results[0].dry_run
        assert results[0].entry == WorklogEntry(
            id=1, original_path="/orig/a", quarantine_path="/q/a"
        )


class TestRun:
    """Tests for processing several top-level arguments."""

    def test_stops_after_failure(self, tmp_path: Path, root: str) -> None:
        report = _engine().run([str(tmp_path / "missing"), root])

        assert report.stopped_early
        assert len(report.outcomes) == 1
        assert report.outcomes[0].error == "No such file or directory"
        assert report.failed

    def test_keep_going(self, tmp_path: Path, root: str) -> None:
        report = _engine(keep_going=True).run([str(tmp_path / "missing"), root])

        assert not report.stopped_early
        assert len(report.outcomes) == 2
        assert report.outcomes[1].queued == 2

    def test_files_rejected_by_default(self, tmp_path: Path, make_file) -> None:
        path = make_file(tmp_path / "f.txt", days=60)

        report = _engine(dry_run=False).run([str(path)])

        assert report.outcomes[0].error == "Not a directory"
        assert path.exists()

    def test_allow_files(self, tmp_path: Path, make_file) -> None:
        old = make_file(tmp_path / "old.txt", days=60, content="x" * 50)
        young = make_file(tmp_path / "young.txt", days=1)
        engine = _engine(dry_run=False, allow_files=True, keep_going=True)

        report = engine.run([str(old), str(young)])

        assert [o.removed for o in report.outcomes] == [True, False]
        assert report.outcomes[1].verdict == Verdict.INELIGIBLE
        assert not old.exists()
        assert young.exists()
        assert report.bytes_freed == 50
        assert not report.failed

    def test_symlinked_argument_is_resolved(self, tmp_path: Path, root: str) -> None:
        link = tmp_path / "link"
        link.symlink_to(root)

        report = _engine().run([str(link)])

        assert report.outcomes[0].path == root

    def test_suffixed_work_logs_are_kept(self, tmp_path: Path, scratch: Path, make_file) -> None:
        second = tmp_path / "second"
        make_file(scratch / "a" / "f.txt", days=60)
        make_file(second / "b" / "f.txt", days=60)
        make_file(second / "c" / "f.txt", days=60)
        base = tmp_path / "wl.db"
        engine = _engine(
            dry_run=False, work_log=str(base), keep_work_log=True, work_log_only=True
        )

        engine.run([str(scratch), str(second)])

        assert not base.exists()
        with Worklog(tmp_path / "wl.db.1", reset=False, keep=True) as first:
            assert len(first) == 1
        with Worklog(tmp_path / "wl.db.2", reset=False, keep=True) as other:
            assert len(other) == 2

    def test_work_log_deleted_unless_kept(self, tmp_path: Path, root: str) -> None:
        base = tmp_path / "wl.db"

        _engine(work_log=str(base)).run([root])

        assert not base.exists()

    def test_default_kept_log_location(
        self, tmp_path: Path, root: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))

        _engine(keep_work_log=True).run([root])

        assert (tmp_path / "state" / "scratchctl" / "worklog.db").exists()


class TestLogSettings:
    """Tests for the settings summary."""

    def test_mentions_threshold_and_chain(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO):
            _engine(days=1).log_settings()

        assert "This will be a dry run only" in caplog.text
        assert "Temporal threshold of 1 day " in caplog.text
        assert "isPipeOrSocket" in caplog.text
