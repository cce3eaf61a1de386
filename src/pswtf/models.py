"""Data models for pswtf."""

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True, frozen=True)
class ProcessInfo:
    """Immutable view of one process at snapshot time."""

    pid: int
    parent_pid: int | None
    name: str
    exe: str | None
    cmd: str  # argv joined with single spaces
    status: str
    cpu_percent: float
    memory_bytes: int
    virtual_memory_bytes: int
    read_bytes: int
    written_bytes: int
    run_time_seconds: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "parentPid": self.parent_pid,
            "name": self.name,
            "exe": self.exe,
            "cmd": self.cmd,
            "status": self.status,
            "cpuPercent": self.cpu_percent,
            "memoryBytes": self.memory_bytes,
            "virtualMemoryBytes": self.virtual_memory_bytes,
            "readBytes": self.read_bytes,
            "writtenBytes": self.written_bytes,
            "runTimeSeconds": self.run_time_seconds,
        }


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    """Full process list captured at one instant."""

    collected_at_epoch_ms: int
    process_count: int
    processes: tuple[ProcessInfo, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "collectedAtEpochMs": self.collected_at_epoch_ms,
            "processCount": self.process_count,
            "processes": [proc.to_dict() for proc in self.processes],
        }


@dataclass(slots=True, frozen=True)
class ProcessDetails:
    """A process plus the extra lookups that only run for a single PID."""

    process: ProcessInfo
    open_file_handles: int | None
    cwd: str | None
    root: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "process": self.process.to_dict(),
            "openFileHandles": self.open_file_handles,
            "cwd": self.cwd,
            "root": self.root,
        }


@dataclass(slots=True, frozen=True)
class PortInfo:
    """One listening (TCP) or bound (UDP) socket."""

    protocol: str  # 'TCP' or 'UDP'
    local_address: str  # '*' for any address
    port: int
    state: str | None
    pid: int | None
    process_name: str | None

    @property
    def dedupe_key(self) -> tuple[str, str, int, int, str | None]:
        """Key under which duplicate listings collapse."""
        return (self.protocol, self.local_address, self.port, self.pid or 0, self.state)

    @property
    def sort_key(self) -> tuple[int, str, int]:
        """Port, then protocol, then PID (unknown owner sorts first)."""
        return (self.port, self.protocol, self.pid or 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "protocol": self.protocol,
            "localAddress": self.local_address,
            "port": self.port,
            "state": self.state,
            "pid": self.pid,
            "processName": self.process_name,
        }


@dataclass(slots=True, frozen=True)
class KillFailure:
    """Signal delivery failure for a single PID."""

    pid: int
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"pid": self.pid, "error": self.error}


@dataclass(slots=True, frozen=True)
class KillReport:
    """
    Outcome of a kill request.

    `matched` counts root processes before descendant expansion,
    `attempted` counts targets that were actually signalled. Every attempted
    PID lands in exactly one of `killed` or `failed`.
    """

    matched: int
    attempted: int
    killed: tuple[int, ...]
    failed: tuple[KillFailure, ...]

    @classmethod
    def empty(cls) -> "KillReport":
        """Report for a request that matched nothing."""
        return cls(matched=0, attempted=0, killed=(), failed=())

    @property
    def summary(self) -> str:
        return (
            f"matched={self.matched}, attempted={self.attempted}, "
            f"killed={len(self.killed)}, failed={len(self.failed)}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "matched": self.matched,
            "attempted": self.attempted,
            "killed": list(self.killed),
            "failed": [failure.to_dict() for failure in self.failed],
        }
