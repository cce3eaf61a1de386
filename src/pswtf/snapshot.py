"""Process snapshot collection and normalization."""

import logging
import time
from collections.abc import Callable, Iterable

from pswtf.errors import ClockError
from pswtf.models import ProcessInfo, ProcessSnapshot
from pswtf.system import RawProcess, SystemCapabilities

logger = logging.getLogger(__name__)

U64_MAX = 2**64 - 1


def saturating_u64(value: float | int | None, factor: int = 1) -> int:
    """Scale `value` by `factor`, clamped to the unsigned 64-bit range."""
    if value is None or value <= 0:
        return 0
    return min(int(value) * factor, U64_MAX)


def optional_path(path: str | None) -> str | None:
    """Treat an empty path as no path at all."""
    return path or None


def to_process_info(raw: RawProcess, now: float | None = None) -> ProcessInfo:
    """Convert one OS process record into a `ProcessInfo`."""
    if now is None:
        now = time.time()

    # psutil reports ppid 0 for roots; a process is never its own parent
    parent_pid = raw.ppid if raw.ppid and raw.ppid > 0 and raw.ppid != raw.pid else None

    run_time = 0
    if raw.create_time is not None and raw.create_time < now:
        run_time = saturating_u64(now - raw.create_time)

    return ProcessInfo(
        pid=raw.pid,
        parent_pid=parent_pid,
        name=raw.name or "",
        exe=optional_path(raw.exe),
        cmd=" ".join(raw.cmdline or []),
        status=str(raw.status) if raw.status else "unknown",
        cpu_percent=float(raw.cpu_percent or 0.0),
        memory_bytes=saturating_u64(raw.memory_rss),
        virtual_memory_bytes=saturating_u64(raw.memory_vms),
        read_bytes=saturating_u64(raw.read_bytes),
        written_bytes=saturating_u64(raw.write_bytes),
        run_time_seconds=run_time,
    )


def process_sort_key(proc: ProcessInfo) -> tuple[float, int, int]:
    """Busiest first: CPU desc, memory desc, PID asc."""
    return (-proc.cpu_percent, -proc.memory_bytes, proc.pid)


def collect_processes(system: SystemCapabilities) -> list[ProcessInfo]:
    """Read every process fresh from the OS, busiest first."""
    now = time.time()
    processes = [to_process_info(raw, now) for raw in system.iter_processes()]
    processes.sort(key=process_sort_key)
    logger.debug("Collected %d processes", len(processes))
    return processes


def find_process(processes: Iterable[ProcessInfo], pid: int) -> ProcessInfo | None:
    for proc in processes:
        if proc.pid == pid:
            return proc
    return None


def epoch_ms(clock: Callable[[], float] = time.time) -> int:
    """Milliseconds since the Unix epoch, or ClockError if the clock is unusable."""
    try:
        now = clock()
    except OSError as exc:
        raise ClockError(f"Clock error: {exc}") from exc
    if now < 0:
        raise ClockError("Clock error: system time is before the Unix epoch")
    return int(now * 1000)


def capture_snapshot(
    system: SystemCapabilities,
    clock: Callable[[], float] = time.time,
) -> ProcessSnapshot:
    """Collect all processes and stamp them with the capture time."""
    processes = collect_processes(system)
    return ProcessSnapshot(
        collected_at_epoch_ms=epoch_ms(clock),
        process_count=len(processes),
        processes=tuple(processes),
    )
