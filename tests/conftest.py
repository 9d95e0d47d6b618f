"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

import os
import time
from collections.abc import Callable
from pathlib import Path

import pytest

DAY = 24 * 60 * 60


class FakeClock:
    """Manually advanced monotonic clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def isolated_xdg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep config and state lookups away from the real home directory."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "xdg-state"))


@pytest.fixture
def fake_clock() -> FakeClock:
    """A clock that only moves when told to (or when slept on)."""
    return FakeClock()


def set_age(path: Path, days: float) -> None:
    """Backdate both atime and mtime of path by the given number of days."""
    stamp = time.time() - days * DAY
    os.utime(path, (stamp, stamp), follow_symlinks=False)


@pytest.fixture
def backdate() -> Callable[[Path, float], None]:
    """Function backdating a path's timestamps by a number of days."""
    return set_age


@pytest.fixture
def make_file() -> Callable[..., Path]:
    """Factory creating a file with content and a given age in days."""

    def _make(path: Path, days: float = 0, content: str = "data") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        set_age(path, days)
        return path

    return _make


@pytest.fixture
def scratch(tmp_path: Path) -> Path:
    """An empty top-level scratch directory."""
    root = tmp_path / "scratch"
    root.mkdir()
    return root
