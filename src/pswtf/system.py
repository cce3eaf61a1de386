"""
OS capability layer.

Everything that touches the live process table, the signal namespace or
external commands goes through `SystemCapabilities`, so the rest of the
package can be driven by synthetic data in tests.
"""

import logging
import os
import signal
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RawProcess:
    """Process attributes as reported by the OS; None where access was denied."""

    pid: int
    ppid: int | None = None
    name: str | None = None
    exe: str | None = None
    cmdline: list[str] | None = None
    status: str | None = None
    cpu_percent: float | None = None
    memory_rss: int | None = None
    memory_vms: int | None = None
    read_bytes: int | None = None
    write_bytes: int | None = None
    create_time: float | None = None


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Exit status and decoded stdout of an external command."""

    returncode: int
    stdout: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class SystemCapabilities(ABC):
    """Minimal interface to the host OS used by every pswtf operation."""

    @abstractmethod
    def iter_processes(self) -> Iterator[RawProcess]:
        """Enumerate every process on the host, freshly read."""

    @abstractmethod
    def send_signal(self, pid: int, sig: signal.Signals) -> None:
        """Deliver `sig` to `pid`. Raises OSError when delivery fails."""

    @abstractmethod
    def run_command(self, args: Sequence[str], timeout: float | None = None) -> CommandResult:
        """
        Run an external command and capture its stdout.

        Raises:
            OSError: The command could not be spawned.
            subprocess.TimeoutExpired: `timeout` elapsed before it exited.
        """

    @abstractmethod
    def process_paths(self, pid: int) -> tuple[str | None, str | None]:
        """Return (cwd, root) of `pid`, None for anything unreadable."""

    def self_pid(self) -> int:
        """PID of the host process, which must never be signalled."""
        return os.getpid()


class PsutilSystem(SystemCapabilities):
    """
    Capability implementation backed by psutil and the os module.

    Processes that vanish during enumeration are skipped. Processes that only
    deny some attributes are kept, with those attributes left as None.
    """

    def __init__(self) -> None:
        self._attrs = [
            "pid",
            "ppid",
            "name",
            "exe",
            "cmdline",
            "status",
            "cpu_percent",
            "memory_info",
            "create_time",
        ]
        # io_counters is missing on macOS
        if hasattr(psutil.Process, "io_counters"):
            self._attrs.append("io_counters")

    def iter_processes(self) -> Iterator[RawProcess]:
        for proc in psutil.process_iter(attrs=self._attrs, ad_value=None):
            try:
                with proc.oneshot():
                    record = self._to_raw(proc.info)
            except (psutil.NoSuchProcess, psutil.ZombieProcess):
                # Process exited between listing and reading
                continue
            yield record

    @staticmethod
    def _to_raw(info: dict) -> RawProcess:
        mem_info = info.get("memory_info")
        io = info.get("io_counters")
        return RawProcess(
            pid=info["pid"],
            ppid=info.get("ppid"),
            name=info.get("name"),
            exe=info.get("exe"),
            cmdline=info.get("cmdline"),
            status=info.get("status"),
            cpu_percent=info.get("cpu_percent"),
            memory_rss=mem_info.rss if mem_info else None,
            memory_vms=mem_info.vms if mem_info else None,
            read_bytes=getattr(io, "read_bytes", None),
            write_bytes=getattr(io, "write_bytes", None),
            create_time=info.get("create_time"),
        )

    def send_signal(self, pid: int, sig: signal.Signals) -> None:
        os.kill(pid, sig)

    def run_command(self, args: Sequence[str], timeout: float | None = None) -> CommandResult:
        logger.debug("Running %s", " ".join(args))
        completed = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
        return CommandResult(returncode=completed.returncode, stdout=completed.stdout)

    def process_paths(self, pid: int) -> tuple[str | None, str | None]:
        cwd: str | None = None
        root: str | None = None
        try:
            cwd = psutil.Process(pid).cwd()
        except psutil.Error as exc:
            logger.debug("cwd of %d unavailable: %s", pid, exc)
        try:
            root = os.readlink(f"/proc/{pid}/root")
        except OSError as exc:
            logger.debug("root of %d unavailable: %s", pid, exc)
        return cwd, root
