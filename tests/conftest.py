"""Shared fixtures: an in-memory stand-in for the host OS."""

import errno
import os
import signal
from collections.abc import Iterator, Sequence

import pytest

from pswtf.system import CommandResult, RawProcess, SystemCapabilities

HOST_PID = 4242


def raw(
    pid: int,
    ppid: int | None = None,
    name: str = "proc",
    cmdline: list[str] | None = None,
    cpu: float = 0.0,
    rss: int = 0,
    **kwargs,
) -> RawProcess:
    """Build a RawProcess with sensible defaults."""
    return RawProcess(
        pid=pid,
        ppid=ppid,
        name=name,
        cmdline=cmdline if cmdline is not None else [f"/usr/bin/{name}"],
        status="sleeping",
        cpu_percent=cpu,
        memory_rss=rss,
        **kwargs,
    )


class FakeSystem(SystemCapabilities):
    """Synthetic process table that records every signal sent."""

    def __init__(
        self,
        processes: Sequence[RawProcess] = (),
        commands: dict[tuple[str, ...], CommandResult | BaseException] | None = None,
        self_pid: int = HOST_PID,
    ) -> None:
        self.processes = list(processes)
        self.commands = commands or {}
        self.signal_errors: dict[int, OSError] = {}
        self.paths: dict[int, tuple[str | None, str | None]] = {}
        self.signals: list[tuple[int, signal.Signals]] = []
        self.command_calls: list[tuple[tuple[str, ...], float | None]] = []
        self._self_pid = self_pid

    def iter_processes(self) -> Iterator[RawProcess]:
        yield from self.processes

    def send_signal(self, pid: int, sig: signal.Signals) -> None:
        if pid in self.signal_errors:
            raise self.signal_errors[pid]
        self.signals.append((pid, sig))

    def run_command(self, args: Sequence[str], timeout: float | None = None) -> CommandResult:
        key = tuple(args)
        self.command_calls.append((key, timeout))
        outcome = self.commands.get(key)
        if outcome is None:
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), args[0])
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def process_paths(self, pid: int) -> tuple[str | None, str | None]:
        return self.paths.get(pid, (None, None))

    def self_pid(self) -> int:
        return self._self_pid

    @property
    def signalled_pids(self) -> list[int]:
        return [pid for pid, _ in self.signals]


@pytest.fixture
def tree_system() -> FakeSystem:
    """
    A small process forest::

        1 init
        ├── 10 bash
        │   ├── 11 node server.js
        │   │   └── 12 node worker.js
        │   └── 13 vim
        ├── 20 nginx
        │   ├── 21 nginx
        │   └── 22 nginx
        └── 4242 pswtf (the host)
    """
    return FakeSystem(
        [
            raw(1, None, "init", ["/sbin/init"]),
            raw(10, 1, "bash", ["-bash"]),
            raw(11, 10, "node", ["node", "server.js"], cpu=12.0),
            raw(12, 11, "node", ["node", "worker.js"], cpu=3.0),
            raw(13, 10, "vim", ["vim", "notes.txt"]),
            raw(20, 1, "nginx", ["nginx", "-g", "daemon off;"], rss=2048),
            raw(21, 20, "nginx", ["nginx: worker process"], rss=1024),
            raw(22, 20, "nginx", ["nginx: worker process"], rss=1024),
            raw(HOST_PID, 1, "python", ["python", "-m", "pswtf"]),
        ]
    )
