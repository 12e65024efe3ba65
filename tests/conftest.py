"""Shared test fixtures for the procscale test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from procscale.engine.protocol import BusySignal, ExitRecord, SignalCode

if TYPE_CHECKING:
    from pathlib import Path


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


# =============================================================================
# In-process doubles for the controller's collaborators
# =============================================================================


class FakeChannel:
    """In-memory stand-in for BusySignalChannel (no capacity limit)."""

    def __init__(self) -> None:
        self.pending: list[BusySignal] = []
        self.destroyed = False

    def send(self, code: SignalCode, worker_id: int) -> bool:
        if self.destroyed:
            return False
        self.pending.append(BusySignal(code, worker_id))
        return True

    def acquire(self, *worker_ids: int) -> None:
        for wid in worker_ids:
            self.send(SignalCode.ACQUIRED, wid)

    def release(self, *worker_ids: int) -> None:
        for wid in worker_ids:
            self.send(SignalCode.RELEASED, wid)

    def try_receive_all(self) -> list[BusySignal]:
        drained, self.pending = self.pending, []
        return drained

    def destroy(self) -> None:
        self.destroyed = True


class FakeBackend:
    """Records kills and hands out queued exit records."""

    def __init__(self) -> None:
        self.exits: list[ExitRecord] = []
        self.killed: list[int] = []
        self.missing: set[int] = set()

    def exit(self, worker_id: int, status: int = 0) -> None:
        self.exits.append(ExitRecord(worker_id=worker_id, exit_status=status))

    def poll_exited(self) -> list[ExitRecord]:
        exited, self.exits = self.exits, []
        return exited

    def kill(self, worker_id: int) -> None:
        if worker_id in self.missing:
            raise ProcessLookupError(worker_id)
        self.killed.append(worker_id)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Handler files for loader, integration and CLI tests
# =============================================================================


_FAST_HANDLER = '''\
from __future__ import annotations

import time

from procscale import handler, unit


@handler(name="Fast Test Handler")
class FastHandler:

    @unit
    def handle(self, payload: object) -> None:
        time.sleep(0.01)
'''

_SLOW_HANDLER = '''\
from __future__ import annotations

import time

from procscale import handler, unit


@handler(name="Slow Test Handler")
class SlowHandler:

    @unit
    def handle(self, payload: object) -> None:
        time.sleep(0.3)
'''

_MARKER_HANDLER = '''\
from __future__ import annotations

import os
from pathlib import Path

from procscale import handler, setup, teardown, unit

OUT_DIR = Path({out_dir!r})


@handler(name="Marker Handler")
class MarkerHandler:

    @setup
    def open(self) -> None:
        (OUT_DIR / f"setup-{{os.getpid()}}").touch()

    @unit
    def handle(self, payload: object) -> None:
        pass

    @teardown
    def close(self) -> None:
        (OUT_DIR / f"teardown-{{os.getpid()}}").touch()
'''


_JOB_HANDLER = '''\
from __future__ import annotations

import os
from pathlib import Path

from procscale import handler, setup, unit

OUT_DIR = Path({out_dir!r})


@handler(name="Job Marker Handler")
class JobMarkerHandler:

    @setup
    def open(self) -> None:
        (OUT_DIR / f"setup-{{os.getpid()}}").touch()

    @unit
    def handle(self, payload: object) -> None:
        (OUT_DIR / f"job-{{payload}}").touch()
'''


@pytest.fixture
def fast_handler_file(tmp_path: Path) -> Path:
    """Handler that spends 10ms per job."""
    path = tmp_path / "fast_handler.py"
    path.write_text(_FAST_HANDLER)
    return path


@pytest.fixture
def slow_handler_file(tmp_path: Path) -> Path:
    """Handler that spends 300ms per job."""
    path = tmp_path / "slow_handler.py"
    path.write_text(_SLOW_HANDLER)
    return path


@pytest.fixture
def marker_handler_file(tmp_path: Path) -> Path:
    """Handler whose setup/teardown leave marker files in ``tmp_path/markers``."""
    out_dir = tmp_path / "markers"
    out_dir.mkdir()
    path = tmp_path / "marker_handler.py"
    path.write_text(_MARKER_HANDLER.format(out_dir=str(out_dir)))
    return path


@pytest.fixture
def job_handler_file(tmp_path: Path) -> Path:
    """Handler that leaves a ``job-<payload>`` file in ``tmp_path/markers`` per job."""
    out_dir = tmp_path / "markers"
    out_dir.mkdir()
    path = tmp_path / "job_handler.py"
    path.write_text(_JOB_HANDLER.format(out_dir=str(out_dir)))
    return path
