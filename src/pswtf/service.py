"""The five operations exposed to front ends."""

import logging
from collections.abc import Iterable

from pswtf.config import Settings
from pswtf.errors import NotFoundError, ValidationError
from pswtf.killer import perform_kill, resolve_signal
from pswtf.models import KillReport, PortInfo, ProcessDetails, ProcessInfo, ProcessSnapshot
from pswtf.ports import collect_ports, count_open_file_handles
from pswtf.snapshot import capture_snapshot, collect_processes, find_process, optional_path
from pswtf.system import PsutilSystem, SystemCapabilities
from pswtf.tree import build_child_index, collect_descendants, dedupe_pids

logger = logging.getLogger(__name__)


def matching_processes(processes: Iterable[ProcessInfo], query: str) -> list[ProcessInfo]:
    """
    Processes whose name or command line contains `query`, ignoring case.

    Raises:
        ValidationError: `query` is empty or whitespace.
    """
    needle = (query or "").strip().lower()
    if not needle:
        raise ValidationError("Query cannot be empty")
    return [
        proc for proc in processes if needle in proc.name.lower() or needle in proc.cmd.lower()
    ]


def _validate_pid(pid: int) -> None:
    if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
        raise ValidationError("PID must be a positive integer")


class ProcessService:
    """
    Process inspection and termination on top of a `SystemCapabilities`.

    Nothing is cached between calls: every operation takes its own fresh
    process scan, so instances can be shared freely between callers.
    """

    def __init__(
        self,
        system: SystemCapabilities | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.system = system if system is not None else PsutilSystem()
        self.settings = settings if settings is not None else Settings()

    def get_process_snapshot(self) -> ProcessSnapshot:
        """All processes, busiest first, with capture time and count."""
        return capture_snapshot(self.system)

    def get_process_details(self, pid: int) -> ProcessDetails:
        """
        Full details for one process.

        Raises:
            ValidationError: `pid` is not positive.
            NotFoundError: `pid` is not running.
        """
        _validate_pid(pid)
        process = find_process(collect_processes(self.system), pid)
        if process is None:
            raise NotFoundError(pid)

        cwd, root = self.system.process_paths(pid)
        return ProcessDetails(
            process=process,
            open_file_handles=count_open_file_handles(
                self.system,
                pid,
                lsof=self.settings.lsof,
                timeout=self.settings.command_timeout,
            ),
            cwd=optional_path(cwd),
            root=optional_path(root),
        )

    def list_open_ports(self) -> list[PortInfo]:
        """Listening TCP and bound UDP sockets. Raises ExternalToolError."""
        return collect_ports(
            self.system,
            lsof=self.settings.lsof,
            timeout=self.settings.command_timeout,
        )

    def kill_process(
        self,
        pid: int,
        include_children: bool | None = True,
        force: bool | None = False,
    ) -> KillReport:
        """
        Terminate `pid`, and by default its whole subtree first.

        Raises:
            ValidationError: `pid` is not positive.
            NotFoundError: `pid` is not running; nothing is signalled.
        """
        _validate_pid(pid)
        processes = collect_processes(self.system)
        if find_process(processes, pid) is None:
            raise NotFoundError(pid)

        targets: list[int] = []
        if include_children is None or include_children:
            targets.extend(collect_descendants(pid, build_child_index(processes)))
        targets.append(pid)

        logger.info("Kill request for PID %d (%d targets)", pid, len(targets))
        return perform_kill(dedupe_pids(targets), 1, resolve_signal(force), self.system)

    def kill_matching_processes(
        self,
        query: str,
        include_children: bool | None = True,
        force: bool | None = False,
    ) -> KillReport:
        """
        Terminate every process whose name or command line contains `query`.

        Matching is a case-insensitive substring test. Matching nothing is not
        an error and yields an all-zero report.

        Raises:
            ValidationError: `query` is empty or whitespace.
        """
        needle = (query or "").strip().lower()
        if not needle:
            raise ValidationError("Query cannot be empty")

        processes = collect_processes(self.system)
        roots = dedupe_pids(proc.pid for proc in matching_processes(processes, needle))
        if not roots:
            logger.info("Kill query %r matched no processes", needle)
            return KillReport.empty()

        index = build_child_index(processes)
        expand = include_children is None or include_children
        targets: list[int] = []
        for root_pid in roots:
            if expand:
                targets.extend(collect_descendants(root_pid, index))
            targets.append(root_pid)

        logger.info("Kill query %r matched %d processes", needle, len(roots))
        return perform_kill(dedupe_pids(targets), len(roots), resolve_signal(force), self.system)
