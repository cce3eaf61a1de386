"""Verification Test: real process trees on the host OS.

Spawns throwaway process trees with multiprocessing and kills them through
ProcessService backed by psutil, checking that children die with their
parent and that the test runner itself is never signalled.
"""

import contextlib
import multiprocessing
import os
import time

import psutil
import pytest

from pswtf.errors import NotFoundError
from pswtf.service import ProcessService


def dummy_worker(duration: float = 60.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


def parent_worker(child_pids, duration: float = 60.0) -> None:
    """Start one sleeping child, report its PID, then sleep."""
    child = multiprocessing.Process(target=dummy_worker, args=(duration,))
    child.start()
    child_pids.put(child.pid)
    dummy_worker(duration)


def is_gone(pid: int, timeout: float = 5.0) -> bool:
    """True once `pid` has exited (a zombie awaiting reaping counts as exited)."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            if psutil.Process(pid).status() == psutil.STATUS_ZOMBIE:
                return True
        except psutil.NoSuchProcess:
            return True
        time.sleep(0.05)
    return False


@pytest.fixture
def service() -> ProcessService:
    return ProcessService()


class TestLiveKill:
    """Kill verification against the real process table."""

    def test_snapshot_contains_self(self, service):
        snapshot = service.get_process_snapshot()

        assert snapshot.process_count == len(snapshot.processes)
        assert any(proc.pid == os.getpid() for proc in snapshot.processes)
        assert all(proc.pid >= 0 for proc in snapshot.processes)

    def test_details_for_self(self, service):
        details = service.get_process_details(os.getpid())

        assert details.process.pid == os.getpid()
        assert details.process.parent_pid == (os.getppid() or None)
        assert details.open_file_handles is None or details.open_file_handles >= 0

    def test_kill_tree(self, service):
        child_pids = multiprocessing.Queue()
        parent = multiprocessing.Process(target=parent_worker, args=(child_pids,))
        parent.start()

        try:
            grandchild_pid = child_pids.get(timeout=10.0)

            report = service.kill_process(parent.pid)

            assert report.matched == 1
            assert grandchild_pid in report.killed
            assert report.killed[-1] == parent.pid
            assert report.attempted == len(report.killed) + len(report.failed)

            parent.join(timeout=5.0)
            assert not parent.is_alive()
            assert is_gone(grandchild_pid)
        finally:
            if parent.is_alive():
                parent.kill()
                parent.join(timeout=1.0)

    def test_kill_without_children_spares_child(self, service):
        child_pids = multiprocessing.Queue()
        parent = multiprocessing.Process(target=parent_worker, args=(child_pids, 5.0))
        parent.start()
        grandchild_pid = None

        try:
            grandchild_pid = child_pids.get(timeout=10.0)

            report = service.kill_process(parent.pid, include_children=False, force=True)

            assert report.killed == (parent.pid,)
            parent.join(timeout=5.0)
            assert not parent.is_alive()
            assert psutil.pid_exists(grandchild_pid)
        finally:
            if parent.is_alive():
                parent.kill()
            if grandchild_pid is not None:
                with contextlib.suppress(psutil.NoSuchProcess):
                    psutil.Process(grandchild_pid).kill()

    def test_self_is_never_signalled(self, service):
        report = service.kill_process(os.getpid(), include_children=False)

        assert report.matched == 1
        assert report.attempted == 0
        assert report.killed == ()
        assert report.failed == ()

    def test_vanished_pid_is_not_found(self, service):
        worker = multiprocessing.Process(target=dummy_worker, args=(0.0,))
        worker.start()
        worker.join(timeout=5.0)

        with pytest.raises(NotFoundError):
            service.kill_process(worker.pid)
